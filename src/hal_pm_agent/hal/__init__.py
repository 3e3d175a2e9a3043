from .client import HalApiClient
from .models import ApiOk, ApiRejected
from .transport import HalTransport, RequestEnvelope, TransportResult

__all__ = [
    "ApiOk",
    "ApiRejected",
    "HalApiClient",
    "HalTransport",
    "RequestEnvelope",
    "TransportResult",
]

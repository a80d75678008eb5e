from fastapi import HTTPException, status

class NotFoundError(HTTPException):
    """Custom exception for not found errors"""
    def __init__(self, resource: str = "Resource"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=f"{resource} not found")

class ValidationError(HTTPException):
    """Custom exception for validation errors"""
    def __init__(self, detail: str = "Validation failed"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

class WebhookRejectedError(HTTPException):
    """Webhook failed a trust check (signature, tenant, secret). Never retried by us."""
    def __init__(self, detail: str = "Webhook rejected"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

class ExternalServiceError(HTTPException):
    """Upstream provider (Stripe) call failed on a merchant-initiated request"""
    def __init__(self, detail: str = "External service call failed"):
        super().__init__(status_code=status.HTTP_502_BAD_GATEWAY, detail=detail)

"""
Custom exceptions for the Pipeline Journey API.
Provides consistent error handling across the application.
"""


class PipelineJourneyException(Exception):
    """Base exception for Pipeline Journey"""
    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class NotFoundError(PipelineJourneyException):
    """Resource not found"""
    def __init__(self, resource: str = "Resource", resource_id: str = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(message)


class StageConflictError(PipelineJourneyException):
    """Lead stage changed underneath a move; re-evaluate and retry"""
    def __init__(self, lead_id: str, expected_stage_id: str = None):
        message = f"Lead '{lead_id}' is no longer in stage '{expected_stage_id}'"
        self.lead_id = lead_id
        self.expected_stage_id = expected_stage_id
        self.retryable = True
        super().__init__(message)


class ValidationError(PipelineJourneyException):
    """Validation failed"""
    def __init__(self, message: str = "Validation failed", field: str = None):
        if field:
            message = f"Validation failed for field '{field}': {message}"
        super().__init__(message)


class ExternalServiceError(PipelineJourneyException):
    """External service call failed"""
    def __init__(self, service: str = "External service", message: str = None):
        msg = f"{service} call failed"
        if message:
            msg = f"{msg}: {message}"
        super().__init__(msg)


class WebhookDeliveryError(ExternalServiceError):
    """Outbound journey webhook did not accept the message"""
    def __init__(self, error_class: str, message: str = None, status_code: int = None):
        self.error_class = error_class
        self.status_code = status_code
        super().__init__("Journey webhook", message or error_class)

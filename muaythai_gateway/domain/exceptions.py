"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class SignatureVerificationError(DomainException):
    """Webhook signature header missing, malformed, or not matching the body"""

    pass


class InvalidPayloadError(DomainException):
    """Webhook body could not be parsed into an event"""

    pass


class WebhookConfigurationError(DomainException):
    """Webhook secret is required but not configured"""

    pass


class CronAuthenticationError(DomainException):
    """Cron caller did not present a valid secret"""

    pass


class EmailNotConfiguredError(DomainException):
    """Email provider API key is not configured"""

    pass


class EmailDeliveryError(DomainException):
    """Email provider rejected the message or is unavailable"""

    pass


class UnsupportedReportFormatError(DomainException):
    """Scheduled report requested a format we cannot render"""

    pass


class InvalidUploadError(DomainException):
    """Uploaded file failed validation"""

    pass

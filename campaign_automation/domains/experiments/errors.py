"""Typed failures raised by the interactive automation entry points."""


class AutomationError(Exception):
    """Base class for automation engine errors."""


class CampaignNotFoundError(AutomationError, LookupError):
    def __init__(self, campaign_id: str) -> None:
        super().__init__(f"Test campaign not found: {campaign_id}")
        self.campaign_id = campaign_id


class VariantNotFoundError(AutomationError, LookupError):
    def __init__(self, variant_id: str) -> None:
        super().__init__(f"Variant not found: {variant_id}")
        self.variant_id = variant_id


class TemplateNotFoundError(AutomationError, LookupError):
    def __init__(self, template_id: str) -> None:
        super().__init__(f"Template not found: {template_id}")
        self.template_id = template_id


class InvalidSelectionError(AutomationError, ValueError):
    """Raised when a manual winner selection cannot be applied."""

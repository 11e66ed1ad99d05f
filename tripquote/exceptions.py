"""Engine exceptions. Rule failures are verdicts, not exceptions."""


class ConfigurationError(ValueError):
    """Rate table or settings are malformed."""


class PromotionError(Exception):
    pass


class DuplicatePromotionCode(PromotionError):
    def __init__(self, code: str):
        super().__init__(f"Promotion code already exists: {code}")
        self.code = code


class PromotionNotFound(PromotionError):
    def __init__(self, code: str):
        super().__init__(f"Promotion code not found: {code}")
        self.code = code

class PublishingError(Exception):
    """Base error for dispatch and row processing failures."""

    code = "publishing_error"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code


class EmptyBatch(PublishingError):
    code = "empty_batch"


class MissingSiteReference(PublishingError):
    code = "missing_site"


class MissingTextModel(PublishingError):
    code = "missing_text_model"


class BatchParseError(PublishingError):
    code = "bad_batch"


class SiteConfigMissing(PublishingError):
    code = "site_config_missing"


class ApiKeyMissing(PublishingError):
    code = "api_key_missing"


class RemoteTimeout(PublishingError):
    code = "timeout"


class RemoteCallFailed(PublishingError):
    code = "remote_error"


class MalformedGeneration(PublishingError):
    code = "malformed_generation"

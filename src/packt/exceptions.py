"""
Error kinds raised across the pipeline.

Only ``ConfigMissing`` and ``SessionError`` abort a run; the other kinds are
caught at their stage boundary and recorded on the catalog.
"""


class PacktError(Exception):
    pass


class ConfigMissing(PacktError):
    def __init__(self, field: str):
        super().__init__(f"Missing required setting: {field}")
        self.field = field


class SessionError(PacktError):
    pass


class LoginFailed(SessionError):
    def __init__(self, reason: str):
        super().__init__(f"Login failed: {reason}")
        self.reason = reason


class ChallengeTimeout(SessionError):
    def __init__(self, waited: float):
        super().__init__(f"Challenge was not cleared within {waited:.0f}s")
        self.waited = waited


class ExtractionDegraded(PacktError):
    def __init__(self, field: str, reason: str):
        super().__init__(f"{field}: {reason}")
        self.field = field
        self.reason = reason


class VideoUnresolved(PacktError):
    pass


class DownloadFailed(PacktError):
    pass


class InvalidTransition(PacktError, ValueError):
    pass

"""Errors raised by the clip storage backend."""


class ClipStorageError(Exception):
    """Base class for knowledge store failures."""


class ClipNotFound(ClipStorageError):
    def __init__(self, clip_id: str):
        self.clip_id = clip_id
        super().__init__(f"Clip with ID {clip_id} not found")


class LoadFailed(ClipStorageError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Failed to load clips: {reason}")


class SaveFailed(ClipStorageError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Failed to save clip: {reason}")


class DeleteFailed(ClipStorageError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Failed to delete clip: {reason}")

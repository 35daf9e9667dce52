"""Exception types raised by the storage and transfer layers."""


class PromptVaultError(Exception):
    """Base class; ``code`` is the machine-readable error code sent to API clients."""
    code = "INTERNAL_ERROR"


class DuplicateNameError(PromptVaultError):
    code = "DUPLICATE_NAME"

    def __init__(self, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(f'{kind} with name "{name}" already exists')


class ImportFormatError(PromptVaultError):
    code = "INVALID_IMPORT_FORMAT"


class InvalidWorkflowError(PromptVaultError):
    code = "INVALID_WORKFLOW_JSON"

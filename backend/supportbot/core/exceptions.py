class SupportEngineError(Exception):
    """Base error of the support engine. Never escapes the orchestrator."""


class EmptyKnowledgeBaseError(SupportEngineError):
    def __init__(self, detail: str = "No KB cards available for retrieval"):
        super().__init__(detail)
        self.detail = detail


class ExternalCallbackError(SupportEngineError):
    def __init__(self, callback: str, detail: str = "External callback failed"):
        super().__init__(f"{callback}: {detail}")
        self.callback = callback
        self.detail = detail

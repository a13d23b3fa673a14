from localgoose.core.document.document import Document

__all__ = ["Document"]

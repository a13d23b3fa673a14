from localgoose.core.connection.connection import Connection, ReadyState

__all__ = ["Connection", "ReadyState"]

from .connection import check_connection, create_db_engine, create_schema, create_session_factory

__all__ = ["check_connection", "create_db_engine", "create_schema", "create_session_factory"]

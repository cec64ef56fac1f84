from app.db.session import SessionLocal, engine, make_engine, make_session_factory  # noqa: F401

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


# Register models on the metadata for create_all and Alembic.
import app.models  # noqa: E402,F401

"""
Read-only views of the marketplace tables this service resolves recipients
and product titles from. They are owned by the storefront; only the columns
used for notifications are mapped.
"""
from sqlalchemy import Column, String

from app.models.base import Base


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String, primary_key=True)
    full_name = Column(String, nullable=True)
    email = Column(String, nullable=True)
    whatsapp_number = Column(String, nullable=True)

    def __repr__(self):
        return f"<Profile(id={self.id})>"


class Product(Base):
    __tablename__ = "products"

    id = Column(String, primary_key=True)
    title = Column(String, nullable=False)

    def __repr__(self):
        return f"<Product(id={self.id}, title='{self.title}')>"

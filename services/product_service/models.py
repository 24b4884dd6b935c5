from sqlalchemy import Column, DateTime, Float, Integer, String

from shared.config.database import Base
from shared.timeutils import utcnow

class Product(Base):
    __tablename__ = "products"
    __table_args__ = {"schema": "product_schema"}

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    price = Column(Float, nullable=False)
    category = Column(String(100), nullable=False, index=True)
    image_url = Column(String(512), nullable=False, default="/public")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

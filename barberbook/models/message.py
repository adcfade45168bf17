from sqlalchemy import Column, String, Text, DateTime, ForeignKey, func, text as sql_text
from sqlalchemy.dialects.postgresql import UUID
from barberbook.db.base_class import Base

class Message(Base):
    __tablename__ = "messages"

    id = Column(UUID(as_uuid=True), primary_key=True, server_default=sql_text("gen_random_uuid()"))
    org_id = Column(UUID(as_uuid=True), ForeignKey("organizations.id"), index=True, nullable=False)
    phone = Column(String, index=True, nullable=False)
    direction = Column(String, nullable=False)
    text = Column(Text, nullable=True)
    # WhatsApp ids are unique per message; redelivered webhooks collide here
    provider_message_id = Column(String, unique=True, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

from sqlalchemy import Column, String, DateTime, ForeignKey, Enum as SQLEnum, func, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from barberbook.db.base_class import Base
from barberbook.domain.appointments import OrgRole

class Organization(Base):
    __tablename__ = "organizations"

    id = Column(UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()"))
    name = Column(String, nullable=False)
    timezone = Column(String, nullable=True)
    whatsapp_instance_id = Column(String, unique=True, index=True, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    members = relationship("OrgUser", back_populates="organization", cascade="all, delete-orphan")

class OrgUser(Base):
    __tablename__ = "org_users"

    org_id = Column(UUID(as_uuid=True), ForeignKey("organizations.id"), primary_key=True)
    user_id = Column(UUID(as_uuid=True), primary_key=True)
    role = Column(
        SQLEnum(OrgRole, name="org_role", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    organization = relationship("Organization", back_populates="members")

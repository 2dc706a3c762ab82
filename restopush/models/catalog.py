from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from restopush.database import Base

# Owned by the menu and events services; the notification producers only read them.


class MenuItem(Base):
    __tablename__ = "menu_items"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)


class OfferWeek(Base):
    __tablename__ = "offer_weeks"
    id = Column(Integer, primary_key=True, index=True)
    week_number = Column(Integer, nullable=False)
    week_theme = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=False, index=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    items = relationship("OfferItem", back_populates="week", order_by="OfferItem.id")


class OfferItem(Base):
    __tablename__ = "offer_items"
    id = Column(Integer, primary_key=True, index=True)
    week_id = Column(Integer, ForeignKey("offer_weeks.id", ondelete="CASCADE"), index=True)
    menu_item_id = Column(Integer, ForeignKey("menu_items.id"), nullable=True)
    custom_name = Column(String(200), nullable=True)
    special_price = Column(Numeric(10, 2), nullable=False)
    highlight_badge = Column(String(50), nullable=True)

    week = relationship("OfferWeek", back_populates="items")
    menu_item = relationship("MenuItem")

    @property
    def display_name(self):
        if self.menu_item is not None:
            return self.menu_item.name
        return self.custom_name


class Event(Base):
    __tablename__ = "events"
    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    date = Column(Date, nullable=False, index=True)
    location = Column(String(200), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

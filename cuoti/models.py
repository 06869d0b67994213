from sqlalchemy import Column, Integer, String, Date, DateTime, Float, ForeignKey, Text, func
from sqlalchemy.orm import declarative_base

Base = declarative_base()

class Transaction(Base):
    __tablename__ = "transactions"
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=True)
    date = Column(Date, nullable=False)
    shop_name = Column(String(255), nullable=False)
    total_amount = Column(Float, nullable=False)  # per-installment amount, never the grand total
    currency = Column(String(10), nullable=False, server_default="ARS")
    status = Column(String(16), nullable=False, server_default="completed")  # "pending" | "completed"
    is_debt = Column(Integer, nullable=False, server_default="0")
    debt_to = Column(String(255))
    type = Column(String(16), nullable=False, server_default="purchase")  # "purchase" | "subscription" | "service"
    is_recurring = Column(Integer, nullable=False, server_default="0")
    group_id = Column(String(64), index=True)
    payment_date = Column(Date)
    recurrence_end_date = Column(Date)
    created_at = Column(DateTime, server_default=func.current_timestamp())

class Item(Base):
    __tablename__ = "items"
    id = Column(Integer, primary_key=True, autoincrement=True)
    transaction_id = Column(Integer, ForeignKey("transactions.id", ondelete="CASCADE"), index=True)
    name = Column(String(255), nullable=False)
    price = Column(Float, nullable=False)
    quantity = Column(Integer, nullable=False, server_default="1")
    link = Column(Text)
    image_url = Column(Text)
    created_at = Column(DateTime, server_default=func.current_timestamp())

class Tag(Base):
    __tablename__ = "tags"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    color = Column(String(16), nullable=False)

class TransactionTag(Base):
    __tablename__ = "transaction_tags"
    transaction_id = Column(Integer, ForeignKey("transactions.id", ondelete="CASCADE"), primary_key=True)
    tag_id = Column(Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True)

class WishlistItem(Base):
    __tablename__ = "wishlist_items"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    price = Column(Float, nullable=False)
    link = Column(Text)
    image_url = Column(Text)
    priority = Column(Integer, nullable=False, server_default="0")
    notes = Column(Text)
    created_at = Column(DateTime, server_default=func.current_timestamp())

class WishlistOption(Base):
    __tablename__ = "wishlist_options"
    id = Column(Integer, primary_key=True, autoincrement=True)
    item_id = Column(Integer, ForeignKey("wishlist_items.id", ondelete="CASCADE"), index=True)
    installments = Column(Integer, nullable=False)
    interest_rate = Column(Float, nullable=False, server_default="0")
    total_amount = Column(Float, nullable=False)
    description = Column(Text)

class WishlistItemTag(Base):
    __tablename__ = "wishlist_item_tags"
    item_id = Column(Integer, ForeignKey("wishlist_items.id", ondelete="CASCADE"), primary_key=True)
    tag_id = Column(Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True)

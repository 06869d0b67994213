from datetime import date, datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, Field, ConfigDict

TransactionType = Literal["purchase", "subscription", "service"]
TransactionStatus = Literal["pending", "completed"]

# ---------- TRANSACTIONS ----------

class TransactionItemIn(BaseModel):
    name: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    quantity: int = Field(1, ge=1)
    link: Optional[str] = None
    image_url: Optional[str] = None

class TransactionItem(TransactionItemIn):
    model_config = ConfigDict(from_attributes=True)
    id: Optional[int] = None
    transaction_id: Optional[int] = None

class TransactionCreate(BaseModel):
    """What the user submits; the writer expands it into one row per installment."""
    date: date
    shop_name: str = Field(..., min_length=1)
    total_amount: float = Field(..., ge=0)
    installments: int = Field(1, ge=1)
    is_debt: bool = False
    debt_to: Optional[str] = None
    type: TransactionType = "purchase"
    is_recurring: bool = False
    group_id: Optional[str] = None
    payment_date: Optional[date] = None
    recurrence_end_date: Optional[date] = None
    tag_ids: List[int] = Field(default_factory=list)
    items: List[TransactionItemIn] = Field(default_factory=list)

class Transaction(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: Optional[int] = None
    user_id: Optional[int] = None
    date: date
    shop_name: str
    total_amount: float
    currency: str = "ARS"
    status: TransactionStatus = "pending"
    is_debt: bool = False
    debt_to: Optional[str] = None
    type: TransactionType = "purchase"
    is_recurring: bool = False
    group_id: Optional[str] = None
    payment_date: Optional[date] = None
    recurrence_end_date: Optional[date] = None
    tag_ids: List[int] = Field(default_factory=list)
    items: List[TransactionItem] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    # projected occurrences only; never persisted
    is_virtual: bool = False
    source_id: Optional[int] = None

class TransactionOut(Transaction):
    key: str

class CreatedOut(BaseModel):
    ids: List[int]
    group_id: str

class StatusIn(BaseModel):
    status: TransactionStatus

class MaterializeIn(BaseModel):
    source_id: int
    year: int = Field(..., ge=1900, le=9999)
    month: int = Field(..., ge=1, le=12)
    status: TransactionStatus = "completed"

# ---------- TAGS ----------

class TagIn(BaseModel):
    name: str = Field(..., min_length=1)
    color: str = Field(..., pattern=r"^#[0-9a-fA-F]{3,8}$")

class Tag(TagIn):
    model_config = ConfigDict(from_attributes=True)
    id: int

# ---------- WISHLIST ----------

class WishlistOptionIn(BaseModel):
    installments: int = Field(..., ge=1)
    interest_rate: float = Field(0.0, ge=0)

class WishlistOption(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    item_id: int
    installments: int
    interest_rate: float
    total_amount: float
    description: Optional[str] = None
    monthly_amount: float = 0.0
    difference: float = 0.0
    percent_difference: float = 0.0

class WishlistItemIn(BaseModel):
    name: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    link: Optional[str] = None
    image_url: Optional[str] = None
    priority: int = 0
    notes: Optional[str] = None
    tag_ids: List[int] = Field(default_factory=list)

class WishlistItemUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    price: Optional[float] = Field(None, ge=0)
    link: Optional[str] = None
    image_url: Optional[str] = None
    priority: Optional[int] = None
    notes: Optional[str] = None
    tag_ids: Optional[List[int]] = None

class WishlistItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    price: float
    link: Optional[str] = None
    image_url: Optional[str] = None
    priority: int = 0
    notes: Optional[str] = None
    tag_ids: List[int] = Field(default_factory=list)
    options: List[WishlistOption] = Field(default_factory=list)

# ---------- SUMMARIES ----------

class MonthSummary(BaseModel):
    year: int
    month: int
    label: str
    total: float
    pending: float
    top_expenses: str

class ContextOut(BaseModel):
    summaries: List[MonthSummary]
    context: str

class DashboardOut(BaseModel):
    monthly_expenses: float = 0.0
    pending_this_month: float = 0.0
    total_debt: float = 0.0
    upcoming: List[Transaction] = Field(default_factory=list)
    projection: List[MonthSummary] = Field(default_factory=list)

class MonthTotal(BaseModel):
    month: int
    name: str
    value: float

class ReportOut(BaseModel):
    year: int
    month: Optional[int] = None
    years: List[int] = Field(default_factory=list)
    monthly_totals: List[MonthTotal] = Field(default_factory=list)
    total_expense: float = 0.0
    average: float = 0.0
    subscription_expenses: float = 0.0
    critical_months: List[MonthTotal] = Field(default_factory=list)
    top_expenses: List[Transaction] = Field(default_factory=list)

# ---------- ASSISTANT ----------

class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str

class ChatIn(BaseModel):
    messages: List[ChatMessage] = Field(..., min_length=1)
    months: int = Field(4, ge=1, le=24)

class ChatOut(BaseModel):
    reply: str

class ParseIn(BaseModel):
    text: str = Field(..., min_length=1)
    model: Optional[str] = None

# ---------- QUOTES ----------

class DolarSummary(BaseModel):
    official_price: float
    official_variation: float
    usdc_price: float
    usdc_variation: float
    usdc_previous_price: float

class PricePoint(BaseModel):
    date: str
    price: int

class ConversionOut(BaseModel):
    amount: float
    kind: str
    result: float
    currency: str

from typing import Annotated, Literal, Optional, List, Union
from pydantic import BaseModel, Field


class Modifier(BaseModel):
    enabled: bool = False
    multiplier: float = Field(default=1.0, gt=0)


class Modifiers(BaseModel):
    urgent: Modifier = Field(default_factory=Modifier)
    emergency: Modifier = Field(default_factory=Modifier)
    after_hours: Modifier = Field(default_factory=Modifier)
    weekend: Modifier = Field(default_factory=Modifier)


class DepositRequired(BaseModel):
    enabled: bool = False
    percentage: float = Field(default=0, ge=0, le=100)


class UniversalFeatures(BaseModel):
    materials_included: bool = False
    minimum_charge: int = Field(default=0, ge=0)
    deposit_required: DepositRequired = Field(default_factory=DepositRequired)


class BulkDiscount(BaseModel):
    enabled: bool = False
    threshold: int = Field(default=2, ge=2)
    discounted_price: int = Field(default=0, ge=0)


class Tier(BaseModel):
    id: str = ""
    name: str
    price: int = Field(gt=0)


class ComponentPricing(BaseModel):
    type: Literal["fixed", "per_unit"]
    price: int = 0
    price_per_unit: int = 0


class Component(BaseModel):
    id: str = ""
    name: str
    pricing: ComponentPricing


class PriceRange(BaseModel):
    min: int = 0
    max: int = 0


# ---- pricing models (one variant per tag) ----

class SimpleFixed(BaseModel):
    pricing_model: Literal["simple_fixed"] = "simple_fixed"
    base_price: int = Field(gt=0)


class UnitBased(BaseModel):
    pricing_model: Literal["unit_based"] = "unit_based"
    base_price: int = Field(gt=0)
    price_per_additional_unit: int = Field(ge=0)
    unit_name: str
    bulk_discount: BulkDiscount = Field(default_factory=BulkDiscount)


class Tiered(BaseModel):
    pricing_model: Literal["tiered"] = "tiered"
    tiers: List[Tier] = Field(min_length=1)


class AreaBased(BaseModel):
    pricing_model: Literal["area_based"] = "area_based"
    price_per_unit: int = Field(gt=0)
    unit_name: str
    minimum_charge: int = 0


class ComponentBased(BaseModel):
    pricing_model: Literal["component_based"] = "component_based"
    components: List[Component] = Field(min_length=1)


class InspectionRequired(BaseModel):
    pricing_model: Literal["inspection_required"] = "inspection_required"
    inspection_fee: int = Field(ge=0)
    inspection_fee_refundable: bool = False
    estimated_range: Optional[PriceRange] = None
    message: str = "Final price determined after inspection"


class FullyCustom(BaseModel):
    pricing_model: Literal["fully_custom"] = "fully_custom"
    suggested_range: Optional[PriceRange] = None
    message: str = "Price negotiable based on requirements"


PricingConfig = Annotated[
    Union[SimpleFixed, UnitBased, Tiered, AreaBased, ComponentBased, InspectionRequired, FullyCustom],
    Field(discriminator="pricing_model"),
]


class ServiceOffering(BaseModel):
    """What the artisan sells: a pricing config plus modifiers and universal features."""
    service_ref: str = ""
    pricing: PricingConfig
    modifiers: Modifiers = Field(default_factory=Modifiers)
    universal_features: UniversalFeatures = Field(default_factory=UniversalFeatures)


class SelectedComponent(BaseModel):
    id: str = ""
    name: str = ""
    quantity: int = Field(default=1, ge=1)


class Selections(BaseModel):
    units: int = Field(default=1, ge=1)
    tier_id: Optional[str] = None
    tier_name: Optional[str] = None
    area: float = Field(default=0, ge=0)
    components: List[SelectedComponent] = Field(default_factory=list)
    urgency: Literal["normal", "urgent", "emergency"] = "normal"
    time_of_day: Literal["normal", "after_hours"] = "normal"
    day_type: Literal["weekday", "weekend"] = "weekday"


class PriceQuote(BaseModel):
    kind: str
    base_price: Optional[int] = None
    multiplier: float = 1.0
    final_price: Optional[int] = None  # None: no estimate, artisan must propose a price
    deposit: Optional[int] = None
    materials_included: bool = False
    message: str = ""

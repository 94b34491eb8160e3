from artisan_booking.core.errors import ValidationError
from artisan_booking.schemas.pricing import (
    ServiceOffering, Selections, PriceQuote,
    SimpleFixed, UnitBased, Tiered, AreaBased, ComponentBased, InspectionRequired, FullyCustom,
)
from artisan_booking.services.fees import round_half_up


def _simple_fixed(cfg: SimpleFixed, sel: Selections) -> int:
    return cfg.base_price


def _unit_based(cfg: UnitBased, sel: Selections) -> int:
    price = cfg.base_price
    extra = sel.units - 1
    if extra > 0:
        if cfg.bulk_discount.enabled and sel.units >= cfg.bulk_discount.threshold:
            price += cfg.bulk_discount.discounted_price * extra
        else:
            price += cfg.price_per_additional_unit * extra
    return price


def _tiered(cfg: Tiered, sel: Selections) -> int:
    for t in cfg.tiers:
        if (sel.tier_id and t.id == sel.tier_id) or (sel.tier_name and t.name == sel.tier_name):
            return t.price
    raise ValidationError("unknown tier", tier_id=sel.tier_id, tier_name=sel.tier_name)


def _area_based(cfg: AreaBased, sel: Selections) -> int:
    if sel.area <= 0:
        raise ValidationError("area must be > 0")
    price = round_half_up(cfg.price_per_unit * sel.area)
    if cfg.minimum_charge:
        price = max(price, cfg.minimum_charge)
    return price


def _component_based(cfg: ComponentBased, sel: Selections) -> int:
    if not sel.components:
        raise ValidationError("select at least one component")
    total = 0
    for chosen in sel.components:
        comp = next((c for c in cfg.components if (chosen.id and c.id == chosen.id) or c.name == chosen.name), None)
        if comp is None:
            raise ValidationError("unknown component", component=chosen.id or chosen.name)
        if comp.pricing.type == "fixed":
            total += comp.pricing.price
        else:
            total += comp.pricing.price_per_unit * chosen.quantity
    return total


_BASE_PRICE = {
    SimpleFixed: _simple_fixed,
    UnitBased: _unit_based,
    Tiered: _tiered,
    AreaBased: _area_based,
    ComponentBased: _component_based,
}


def multiplier_for(offering: ServiceOffering, sel: Selections) -> float:
    m = offering.modifiers
    multiplier = 1.0
    if sel.urgency == "urgent" and m.urgent.enabled:
        multiplier *= m.urgent.multiplier
    if sel.urgency == "emergency" and m.emergency.enabled:
        multiplier *= m.emergency.multiplier
    if sel.time_of_day == "after_hours" and m.after_hours.enabled:
        multiplier *= m.after_hours.multiplier
    if sel.day_type == "weekend" and m.weekend.enabled:
        multiplier *= m.weekend.multiplier
    return multiplier


def compute_price(offering: ServiceOffering, selections: Selections | None = None) -> PriceQuote:
    """Pure price quote for an offering. ``final_price`` is None when the artisan has to propose one."""
    sel = selections or Selections()
    cfg = offering.pricing
    features = offering.universal_features

    if isinstance(cfg, FullyCustom):
        return PriceQuote(kind=cfg.pricing_model, message=cfg.message, materials_included=features.materials_included)
    if isinstance(cfg, InspectionRequired):
        return PriceQuote(
            kind=cfg.pricing_model,
            base_price=cfg.inspection_fee,
            final_price=cfg.inspection_fee,
            materials_included=features.materials_included,
            message=cfg.message,
        )

    handler = _BASE_PRICE.get(type(cfg))
    if handler is None:
        raise ValidationError("unsupported pricing model", pricing_model=cfg.pricing_model)

    base = handler(cfg, sel)
    multiplier = multiplier_for(offering, sel)
    final = max(round_half_up(base * multiplier), features.minimum_charge)

    deposit = None
    if features.deposit_required.enabled:
        deposit = round_half_up(final * features.deposit_required.percentage / 100)

    return PriceQuote(
        kind=cfg.pricing_model,
        base_price=base,
        multiplier=multiplier,
        final_price=final,
        deposit=deposit,
        materials_included=features.materials_included,
    )

"""
Pricing for embroidery customization.

`calculate_material_costs` prices a custom design from raw material rates.
`DesignCustomization` holds the selected embroidery options for each design
of a cart line and prices them.
"""
import copy
from collections import namedtuple
from decimal import Decimal, ROUND_HALF_UP

TWO_PLACES = Decimal('0.01')
MAX_DESIGN_QUANTITY = 999

SINGLE_SELECT_CATEGORIES = ('coverage', 'material', 'border', 'backing', 'cutting')
MULTI_SELECT_CATEGORIES = ('threads', 'upgrades')
ALL_CATEGORIES = SINGLE_SELECT_CATEGORIES + MULTI_SELECT_CATEGORIES

# Breakdown key -> MaterialCost name for the lines priced by area
AREA_MATERIALS = {
    'fabricCost': 'Fabric',
    'patchAttachCost': 'Patch Attach',
    'cutAwayStabilizerCost': 'Cut-Away Stabilizer',
    'washAwayStabilizerCost': 'Wash-Away Stabilizer',
}

MaterialRate = namedtuple('MaterialRate', ['cost', 'width', 'length', 'waste_factor'])
StyleOption = namedtuple('StyleOption', ['key', 'name', 'category', 'price', 'incompatible'])


class CustomizationError(ValueError):
    pass


class IncompatibleOptionError(CustomizationError):
    pass


def money(value):
    return Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def _decimal(value):
    return Decimal(str(value))


def design_quantity(value):
    """Whole number of pieces, 1 to MAX_DESIGN_QUANTITY"""
    if isinstance(value, bool):
        raise CustomizationError('Quantity must be a whole number')
    try:
        quantity = int(value)
    except (TypeError, ValueError, OverflowError):
        raise CustomizationError('Quantity must be a whole number')
    if quantity != _decimal(value) or not 1 <= quantity <= MAX_DESIGN_QUANTITY:
        raise CustomizationError(f'Quantity must be between 1 and {MAX_DESIGN_QUANTITY}')
    return quantity


def estimate_stitches(width, height):
    """Roughly 1000 stitches per square inch"""
    return int((_decimal(width) * _decimal(height) * 1000).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def rates_from_queryset(queryset):
    """Map material name -> MaterialRate for the active rows of a MaterialCost queryset"""
    return {
        m.name: MaterialRate(m.cost, m.width, m.length, m.waste_factor)
        for m in queryset.filter(is_active=True)
    }


def calculate_material_costs(width, height, rates, stitches=None):
    """
    Price a design of width x height inches.

    `rates` maps material names to MaterialRate. Missing materials, or
    materials whose dimensions are zero, contribute nothing.
    """
    width = _decimal(width)
    height = _decimal(height)
    if width <= 0 or height <= 0:
        raise CustomizationError('Width and height must be greater than zero')
    if stitches is None:
        stitches = estimate_stitches(width, height)
    stitches = _decimal(stitches)
    if stitches < 0:
        raise CustomizationError('Stitches cannot be negative')

    area = width * height
    breakdown = {}

    for key, name in AREA_MATERIALS.items():
        rate = rates.get(name)
        if rate is None or not rate.width or not rate.length:
            breakdown[key] = money(0)
            continue
        material_area = _decimal(rate.width) * _decimal(rate.length)
        breakdown[key] = money(area / material_area * _decimal(rate.cost) * _decimal(rate.waste_factor))

    thread = rates.get('Thread')
    if thread is None:
        breakdown['threadCost'] = money(0)
    else:
        breakdown['threadCost'] = money(
            stitches / Decimal('1000000') * _decimal(thread.cost) * _decimal(thread.waste_factor)
        )

    bobbin = rates.get('Bobbin')
    if bobbin is None or not bobbin.length:
        breakdown['bobbinCost'] = money(0)
    else:
        breakdown['bobbinCost'] = money(
            stitches / _decimal(bobbin.length) * (_decimal(bobbin.cost) / 144) * _decimal(bobbin.waste_factor)
        )

    breakdown['totalCost'] = money(sum(breakdown.values(), Decimal('0')))
    breakdown['stitches'] = int(stitches)
    return breakdown


class DesignCustomization:
    """
    Selected embroidery options per design.

    Each design maps a category to one option key (single-select
    categories) or a list of option keys (threads, upgrades).
    """

    def __init__(self, options, base_price=0, quantity=1):
        # options: key -> StyleOption
        self.options = options
        self.base_price = _decimal(base_price)
        self.quantity = design_quantity(quantity)
        self.designs = {}
        self.design_quantities = {}

    @classmethod
    def from_queryset(cls, queryset, base_price=0, quantity=1):
        options = {}
        for option in queryset:
            style = StyleOption(option.key, option.name, option.category, option.price, list(option.incompatible or []))
            options[option.key] = style
            options[str(option.pk)] = style
        return cls(options, base_price=base_price, quantity=quantity)

    def add_design(self, design_id, quantity=None):
        design_id = str(design_id)
        self.designs.setdefault(design_id, {})
        if quantity is not None:
            self.design_quantities[design_id] = design_quantity(quantity)
        return self.designs[design_id]

    def get_option(self, key):
        option = self.options.get(str(key))
        if option is None:
            raise CustomizationError(f'Unknown embroidery option: {key}')
        return option

    def _design(self, design_id):
        design_id = str(design_id)
        if design_id not in self.designs:
            raise CustomizationError(f'Unknown design: {design_id}')
        return self.designs[design_id]

    def selected_keys(self, design_id):
        keys = []
        for category, value in self._design(design_id).items():
            if isinstance(value, list):
                keys.extend(value)
            elif value:
                keys.append(value)
        return keys

    def check_compatibility(self, design_id, option, ignore_category=None):
        for key in self.selected_keys(design_id):
            selected = self.options[key]
            if ignore_category and selected.category == ignore_category:
                continue
            if selected.key in option.incompatible or option.key in selected.incompatible:
                raise IncompatibleOptionError(f'{option.name} cannot be combined with {selected.name}')

    def select(self, design_id, category, option_key):
        """Pick the option for a single-select category, replacing the previous choice"""
        if category not in SINGLE_SELECT_CATEGORIES:
            raise CustomizationError(f'{category} is not a single-select category')
        option = self.get_option(option_key)
        if option.category != category:
            raise CustomizationError(f'{option.name} does not belong to {category}')
        design = self._design(design_id)
        self.check_compatibility(design_id, option, ignore_category=category)
        design[category] = option.key

    def toggle(self, design_id, category, option_key):
        """Add or remove an option in a multi-select category"""
        if category not in MULTI_SELECT_CATEGORIES:
            raise CustomizationError(f'{category} is not a multi-select category')
        option = self.get_option(option_key)
        if option.category != category:
            raise CustomizationError(f'{option.name} does not belong to {category}')
        design = self._design(design_id)
        selected = design.setdefault(category, [])
        if option.key in selected:
            selected.remove(option.key)
            return False
        self.check_compatibility(design_id, option)
        selected.append(option.key)
        return True

    def apply(self, design_id, selections):
        """Apply a {category: key | [keys]} mapping to a design"""
        self.add_design(design_id)
        for category, value in (selections or {}).items():
            if category not in ALL_CATEGORIES:
                raise CustomizationError(f'Unknown customization category: {category}')
            if category in MULTI_SELECT_CATEGORIES:
                values = value if isinstance(value, list) else [value]
                for key in values:
                    if key and self.get_option(key).key not in self._design(design_id).get(category, []):
                        self.toggle(design_id, category, key)
            elif isinstance(value, list):
                raise CustomizationError(f'{category} accepts a single option')
            elif value:
                self.select(design_id, category, value)

    def clear(self, design_id, category):
        self._design(design_id).pop(category, None)

    def reset(self, design_id):
        self._design(design_id).clear()

    def copy(self, source_id, target_id):
        """Copy every selection of one design onto another"""
        source_id, target_id = str(source_id), str(target_id)
        if source_id == target_id:
            raise CustomizationError('Cannot copy styles onto the same design')
        source = self._design(source_id)
        self.designs[target_id] = copy.deepcopy(source)
        return self.designs[target_id]

    def options_price(self, design_id):
        """Sum of selected option prices for one unit of a design"""
        return money(sum((_decimal(self.options[key].price) for key in self.selected_keys(design_id)), Decimal('0')))

    def design_price(self, design_id):
        quantity = self.design_quantities.get(str(design_id), self.quantity)
        return money((self.base_price + self.options_price(design_id)) * quantity)

    def total_price(self):
        return money(sum((self.design_price(d) for d in self.designs), Decimal('0')))

    def describe(self, design_id):
        """Selections expanded to option snapshots, for storing on orders"""
        described = {}
        for category, value in self._design(design_id).items():
            keys = value if isinstance(value, list) else [value]
            snapshots = [
                {'key': k, 'name': self.options[k].name, 'price': str(money(self.options[k].price))}
                for k in keys
            ]
            described[category] = snapshots if isinstance(value, list) else snapshots[0]
        return described

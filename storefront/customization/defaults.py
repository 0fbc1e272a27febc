"""Default embroidery option catalogue and material cost rates"""

DEFAULT_MATERIAL_COSTS = [
    {'name': 'Fabric', 'cost': '34.00', 'width': '30', 'length': '36', 'waste_factor': '1.5'},
    {'name': 'Patch Attach', 'cost': '100.00', 'width': '9', 'length': '360', 'waste_factor': '1.5'},
    {'name': 'Thread', 'cost': '4.00', 'width': '0', 'length': '5000', 'waste_factor': '1.2'},
    {'name': 'Bobbin', 'cost': '50.00', 'width': '0', 'length': '35000', 'waste_factor': '1.2'},
    {'name': 'Cut-Away Stabilizer', 'cost': '180.00', 'width': '18', 'length': '3600', 'waste_factor': '1.5'},
    {'name': 'Wash-Away Stabilizer', 'cost': '60.00', 'width': '15', 'length': '900', 'waste_factor': '1.5'},
]


def _option(key, name, description, price, category, level, stitches=0, estimated_time='0 days',
            is_popular=False, incompatible=None):
    return {
        'key': key,
        'name': name,
        'description': description,
        'price': price,
        'category': category,
        'level': level,
        'stitches': stitches,
        'estimated_time': estimated_time,
        'is_popular': is_popular,
        'incompatible': incompatible or [],
    }


DEFAULT_EMBROIDERY_OPTIONS = [
    # Coverage
    _option('coverage-50', '50% Coverage - Mostly Text', 'Perfect for text-heavy designs with minimal graphics',
            '0.00', 'coverage', 'basic', stitches=3000, estimated_time='1-2 days'),
    _option('coverage-75', '75% Coverage - Balanced', 'Ideal balance of detail and cost for most designs',
            '14.50', 'coverage', 'standard', stitches=6000, estimated_time='2-3 days', is_popular=True),
    _option('coverage-100', '100% Coverage - Most Detailed', 'Full coverage embroidery for intricate, detailed designs',
            '27.00', 'coverage', 'premium', stitches=10000, estimated_time='3-4 days'),

    # Base materials
    _option('material-polyester', 'Polyester Blend Twill', 'Standard, durable material perfect for most applications',
            '0.00', 'material', 'basic', is_popular=True),
    _option('material-felt', 'Felt', 'Soft, unique texture that stands out from standard patches',
            '12.78', 'material', 'standard'),
    _option('material-ballistic', 'Black Ballistic Nylon', 'Ultra-durable military-grade material for heavy use',
            '69.90', 'material', 'luxury'),
    _option('material-camo', 'Camouflage Material', 'Tactical camo pattern for outdoor and military applications',
            '26.63', 'material', 'premium'),
    _option('material-reflective', 'Reflective Material (Silver)', 'High-visibility reflective backing for safety applications',
            '58.58', 'material', 'luxury'),

    # Borders
    _option('border-none', 'No Border', 'Clean cut edge without additional finishing', '0.00', 'border', 'basic'),
    _option('border-embroidered', 'Embroidered Border', 'Classic embroidered edge that follows your design shape',
            '0.00', 'border', 'standard', stitches=1000, estimated_time='1 day', is_popular=True),
    _option('border-merrowed', 'Merrowed Border', 'Professional overlock stitch for clean, finished edges',
            '20.24', 'border', 'premium', estimated_time='1 day', incompatible=['border-embroidered']),
    _option('border-frayed', 'Frayed Edges', 'Rustic, vintage look with intentionally frayed edges',
            '20.24', 'border', 'premium', estimated_time='1 day'),

    # Threads
    _option('thread-standard', 'Standard Thread (1-9 colors)', 'High-quality polyester thread in standard colors',
            '0.00', 'threads', 'basic', is_popular=True),
    _option('thread-extra', 'Extra Thread Colors (10-12)', 'Expanded color palette for complex designs',
            '79.88', 'threads', 'standard', incompatible=['thread-many']),
    _option('thread-many', '13+ Thread Colors', 'Unlimited colors for the most detailed designs',
            '127.80', 'threads', 'premium'),
    _option('thread-metallic', 'Metallic Thread', 'Shimmering metallic thread for eye-catching designs',
            '38.34', 'threads', 'premium'),
    _option('thread-neon', 'Neon Thread', 'Bright, vibrant neon colors for maximum visibility',
            '26.63', 'threads', 'standard'),
    _option('thread-glow-10', 'Glow in the Dark (10%)', 'Minimal glow elements for subtle night visibility',
            '35.15', 'threads', 'premium', incompatible=['thread-glow-25', 'thread-glow-50']),
    _option('thread-glow-25', 'Glow in the Dark (25%)', 'Moderate glow coverage for enhanced visibility',
            '63.90', 'threads', 'luxury', incompatible=['thread-glow-50']),
    _option('thread-glow-50', 'Glow in the Dark (50%)', 'Maximum glow coverage for dramatic night effects',
            '99.05', 'threads', 'luxury'),
    _option('thread-puff', 'Puff Embroidery (3D)', 'Raised, three-dimensional embroidery effect',
            '20.24', 'threads', 'premium', estimated_time='1 day'),

    # Backings
    _option('backing-none', 'No Backing', 'No additional backing applied', '0.00', 'backing', 'basic'),
    _option('backing-iron', 'Iron-on Backing', 'Heat-activated adhesive for easy application',
            '0.00', 'backing', 'basic', is_popular=True),
    _option('backing-adhesive', 'Adhesive Backing', 'Peel-and-stick adhesive for quick application',
            '12.78', 'backing', 'standard'),
    _option('backing-velcro-hook', 'Velcro Hook Backing', 'Hook-side Velcro for secure attachment',
            '53.25', 'backing', 'premium'),
    _option('backing-velcro-loop', 'Velcro Loop Backing', 'Loop-side Velcro for soft attachment',
            '46.86', 'backing', 'premium'),
    _option('backing-magnetic', 'Magnetic Backing', 'Magnetic backing for easy repositioning',
            '35.15', 'backing', 'premium'),

    # Upgrades
    _option('upgrade-button-loop', 'Button Loop', 'Fabric loop for button attachment',
            '20.24', 'upgrades', 'standard', is_popular=True),
    _option('upgrade-rhinestone', 'Rhinestone Accents', 'Sparkling rhinestone embellishments',
            '260.93', 'upgrades', 'luxury', estimated_time='1 day'),

    # Cutting
    _option('cutting-laser', 'Laser Cut or Hand Cut', 'Standard cutting method for basic shapes',
            '0.00', 'cutting', 'basic', is_popular=True),
    _option('cutting-hot-cut', 'Hot Cut Edge', 'Precision cutting for complex shapes and irregular designs',
            '20.24', 'cutting', 'premium'),
]

"""Default auto-reply templates and FAQs"""

DEFAULT_AUTO_REPLIES = [
    {
        'key': 'greeting',
        'title': 'Welcome',
        'content': 'Hi! Welcome to Mayhem Creation! How can I help you with your embroidery needs today?',
        'category': 'General',
    },
    {
        'key': 'pricing',
        'title': 'Pricing Info',
        'content': ('Our embroidery starts at $5 per piece for small designs. Prices vary based on size, '
                    'complexity, and quantity. Would you like a custom quote?'),
        'category': 'Pricing',
    },
    {
        'key': 'turnaround',
        'title': 'Turnaround Time',
        'content': ('Standard turnaround is 5-7 business days. Rush orders (2-3 days) are available for an '
                    'additional 50% fee. Premium service (1 day) is available for select designs.'),
        'category': 'General',
    },
    {
        'key': 'shipping',
        'title': 'Shipping',
        'content': ('We offer free shipping on orders over $50. Standard shipping takes 3-5 business days. '
                    'Express shipping is available for rush deliveries.'),
        'category': 'Shipping',
    },
    {
        'key': 'custom_design',
        'title': 'Custom Designs',
        'content': ("We love creating custom embroidery! Please send us your design files (AI, EPS, PNG, or JPG "
                    "format). We'll provide a quote within 24 hours."),
        'category': 'Services',
    },
    {
        'key': 'bulk_orders',
        'title': 'Bulk Orders',
        'content': ('We offer special pricing for bulk orders! Contact us for a custom quote. We work with '
                    'schools, businesses, and organizations regularly.'),
        'category': 'Pricing',
    },
]

GREETING_KEY = 'greeting'

DEFAULT_FAQS = [
    {
        'question': 'What is your turnaround time?',
        'answer': ('Our standard turnaround time is 5-10 business days depending on the complexity and quantity '
                   'of your order. Rush orders can be accommodated with a 2-3 day turnaround for an additional fee.'),
        'category': 'General',
        'sort_order': 1,
    },
    {
        'question': 'Do you offer bulk discounts?',
        'answer': ('Yes! We offer competitive bulk pricing for orders of 25+ pieces. Discounts increase with '
                   'quantity, and we can provide custom quotes for large orders.'),
        'category': 'General',
        'sort_order': 2,
    },
    {
        'question': 'Do you accept custom artwork?',
        'answer': ('Absolutely! We accept vector files (AI, EPS, SVG), high-resolution PNG/JPG files, and even '
                   'hand-drawn sketches. Our design team can help refine your artwork.'),
        'category': 'Design & Artwork',
        'sort_order': 1,
    },
    {
        'question': 'What file formats do you prefer?',
        'answer': ('For best results, we prefer vector files (AI, EPS, SVG) as they scale perfectly. '
                   'High-resolution PNG or JPG files (300 DPI minimum) also work well.'),
        'category': 'Design & Artwork',
        'sort_order': 2,
    },
    {
        'question': 'What is your minimum order quantity?',
        'answer': ('We have a minimum order of 12 pieces for most items. However, we can accommodate smaller '
                   'orders for certain products or special circumstances.'),
        'category': 'Ordering & Shipping',
        'sort_order': 1,
    },
    {
        'question': 'Do you ship nationwide?',
        'answer': ('Yes! We ship to all 50 states and can accommodate international shipping for larger orders. '
                   'We offer expedited shipping options for rush orders.'),
        'category': 'Ordering & Shipping',
        'sort_order': 2,
    },
    {
        'question': 'How should I care for my embroidered items?',
        'answer': ('Machine wash in cold water with like colors, tumble dry on low heat, and iron on the reverse '
                   'side if needed. Avoid bleach and fabric softeners.'),
        'category': 'Quality & Care',
        'sort_order': 1,
    },
]

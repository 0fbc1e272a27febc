"""
Management command to add the default category tree to the database
"""
from django.core.management.base import BaseCommand

from storefront.catalog.models import Category
from storefront.core.cache_signals import (
    suspend_cache_signals, invalidate_category_cache, invalidate_products_cache,
)


DEFAULT_CATEGORIES = [
    {
        'name': 'Apparel',
        'slug': 'apparel',
        'description': 'Clothing and apparel items',
        'children': [
            ('T-Shirts', 'tshirts', 'Custom t-shirts and tees'),
            ('Hoodies', 'hoodies', 'Custom hoodies and sweatshirts'),
            ('Polo Shirts', 'polo-shirts', 'Custom polo shirts'),
            ('Long Sleeve Tees', 'long-sleeve-tees', 'Custom long sleeve t-shirts'),
            ('Zip Hoodies', 'zip-hoodies', 'Custom zip-up hoodies'),
            ('Vintage Tees', 'vintage-tees', 'Vintage style custom t-shirts'),
        ],
    },
    {
        'name': 'Accessories',
        'slug': 'accessories',
        'description': 'Custom accessories and gear',
        'children': [
            ('Caps', 'caps', 'Custom baseball caps and snapbacks'),
            ('Trucker Caps', 'trucker-caps', 'Custom trucker caps'),
            ('Tote Bags', 'tote-bags', 'Custom tote bags'),
            ('Crossbody Bags', 'crossbody-bags', 'Custom crossbody bags'),
            ('Drawstring Bags', 'drawstring-bags', 'Custom drawstring bags'),
        ],
    },
]


class Command(BaseCommand):
    help = "Adds the default product category tree to the database"

    def add_arguments(self, parser):
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Clear all existing categories before adding new ones',
        )

    def handle(self, *args, **options):
        if options['clear']:
            self.stdout.write(self.style.WARNING("Clearing all existing categories..."))
            Category.objects.all().delete()

        created_count = 0
        skipped_count = 0

        with suspend_cache_signals():
            for sort_order, entry in enumerate(DEFAULT_CATEGORIES, start=1):
                parent, created = self._get_or_create(
                    entry['name'], entry['slug'], entry['description'], None, sort_order
                )
                created_count += created
                skipped_count += not created

                for child_order, (name, slug, description) in enumerate(entry['children'], start=1):
                    _, created = self._get_or_create(name, slug, description, parent, child_order)
                    created_count += created
                    skipped_count += not created
        invalidate_category_cache()
        invalidate_products_cache()

        self.stdout.write(self.style.SUCCESS(
            f"Categories created: {created_count}, skipped (already exist): {skipped_count}, "
            f"total in database: {Category.objects.count()}"
        ))

    def _get_or_create(self, name, slug, description, parent, sort_order):
        category, created = Category.objects.get_or_create(
            slug=slug,
            defaults={
                'name': name,
                'description': description,
                'parent': parent,
                'status': 'active',
                'sort_order': sort_order,
            }
        )
        if created:
            self.stdout.write(self.style.SUCCESS(f"  Created: {name}"))
        else:
            self.stdout.write(self.style.WARNING(f"  Skipped (already exists): {name}"))
        return category, created

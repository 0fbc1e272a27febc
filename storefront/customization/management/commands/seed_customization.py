"""
Management command to load the default embroidery options and material costs
"""
from django.core.management.base import BaseCommand
from django.db import transaction

from storefront.customization.defaults import DEFAULT_EMBROIDERY_OPTIONS, DEFAULT_MATERIAL_COSTS
from storefront.customization.models import EmbroideryOption, MaterialCost


class Command(BaseCommand):
    help = "Seeds the default embroidery options and material cost rates"

    def add_arguments(self, parser):
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Delete existing embroidery options and material costs first',
        )
        parser.add_argument(
            '--update',
            action='store_true',
            help='Overwrite existing rows with the default values',
        )

    @transaction.atomic
    def handle(self, *args, **options):
        if options['clear']:
            self.stdout.write(self.style.WARNING("Clearing embroidery options and material costs..."))
            EmbroideryOption.objects.all().delete()
            MaterialCost.objects.all().delete()

        created, updated, skipped = self._seed(EmbroideryOption, 'key', DEFAULT_EMBROIDERY_OPTIONS, options['update'])
        self.stdout.write(self.style.SUCCESS(
            f"Embroidery options: {created} created, {updated} updated, {skipped} skipped"
        ))

        created, updated, skipped = self._seed(MaterialCost, 'name', DEFAULT_MATERIAL_COSTS, options['update'])
        self.stdout.write(self.style.SUCCESS(
            f"Material costs: {created} created, {updated} updated, {skipped} skipped"
        ))

    def _seed(self, model, lookup, rows, update):
        created = updated = skipped = 0
        for row in rows:
            values = dict(row)
            lookup_value = values.pop(lookup)
            obj = model.objects.filter(**{lookup: lookup_value}).first()
            if obj is None:
                model.objects.create(**{lookup: lookup_value}, **values)
                created += 1
            elif update:
                for field, value in values.items():
                    setattr(obj, field, value)
                obj.save()
                updated += 1
            else:
                skipped += 1
        return created, updated, skipped

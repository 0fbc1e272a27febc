"""
Management command to load default auto-reply templates and FAQs
"""
from django.core.management.base import BaseCommand
from django.db import transaction

from storefront.support.defaults import DEFAULT_AUTO_REPLIES, DEFAULT_FAQS
from storefront.support.models import FAQ, AutoReplyTemplate, AutoReplySettings


class Command(BaseCommand):
    help = "Seeds default auto-reply templates, auto-reply settings and FAQs"

    def add_arguments(self, parser):
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Delete existing templates and FAQs before seeding',
        )
        parser.add_argument(
            '--skip-faqs',
            action='store_true',
            help='Only seed auto-reply templates and settings',
        )

    @transaction.atomic
    def handle(self, *args, **options):
        if options['clear']:
            self.stdout.write(self.style.WARNING("Clearing auto-reply templates and FAQs..."))
            AutoReplyTemplate.objects.all().delete()
            if not options['skip_faqs']:
                FAQ.objects.all().delete()

        AutoReplySettings.load()

        created = 0
        for position, template in enumerate(DEFAULT_AUTO_REPLIES, start=1):
            values = {k: v for k, v in template.items() if k != 'key'}
            _, was_created = AutoReplyTemplate.objects.get_or_create(
                key=template['key'], defaults={**values, 'order': position}
            )
            if was_created:
                created += 1
                self.stdout.write(f"  + {template['title']}")
        self.stdout.write(self.style.SUCCESS(f"Auto-reply templates: {created} created"))

        if options['skip_faqs']:
            return

        created = 0
        for faq in DEFAULT_FAQS:
            _, was_created = FAQ.objects.get_or_create(question=faq['question'], defaults=faq)
            if was_created:
                created += 1
        self.stdout.write(self.style.SUCCESS(f"FAQs: {created} created"))

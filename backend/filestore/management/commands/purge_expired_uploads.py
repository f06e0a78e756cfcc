from django.core.management.base import BaseCommand

from filestore import library


class Command(BaseCommand):
    help = "Delete anonymous gallery uploads whose deletion date has passed, together with their files."

    def handle(self, *args, **options):
        removed = library.purge_expired()
        self.stdout.write(self.style.SUCCESS(f"Purged {removed} expired upload(s)"))

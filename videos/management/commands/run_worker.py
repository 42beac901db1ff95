from django.core.management.base import BaseCommand

from videos.worker import run_worker


class Command(BaseCommand):
    help = "Consume video processing tasks and build sprite sheets (one task at a time)."

    def add_arguments(self, parser):
        parser.add_argument(
            "--create-bucket",
            action="store_true",
            default=None,
            help="Create the storage bucket if it does not exist (overrides S3_CREATE_BUCKET).",
        )

    def handle(self, *args, **options):
        run_worker(create_bucket=options["create_bucket"])

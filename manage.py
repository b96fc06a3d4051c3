#!/usr/bin/env python
"""Command line entry point for the DentalCare backend (``dentalcare.settings``)."""
import os
import sys


def main() -> None:
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'dentalcare.settings')
    from django.core.management import execute_from_command_line  # type: ignore

    execute_from_command_line(sys.argv)


if __name__ == '__main__':
    main()

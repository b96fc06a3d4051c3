import bleach
from rest_framework import serializers


def clean_text(v):
    return bleach.clean((v or '').strip(), strip=True)


class CleanCharField(serializers.CharField):
    """CharField whose value is stripped of HTML with bleach."""

    def to_internal_value(self, data):
        return clean_text(super().to_internal_value(data))


class CleanListField(serializers.ListField):
    """List of short free-text strings (allergies, medications, ...)."""

    def __init__(self, **kwargs):
        kwargs.setdefault('child', CleanCharField(max_length=255, allow_blank=True))
        kwargs.setdefault('required', False)
        super().__init__(**kwargs)

    def to_internal_value(self, data):
        if isinstance(data, str):
            data = [s for s in data.split(',')]
        return [v for v in super().to_internal_value(data) if v]

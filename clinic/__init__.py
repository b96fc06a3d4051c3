"""Clinic application for the dental clinic backend.

This package contains models, serializers, services, views and route
registrations for patients, appointments, referrals, clinical records
and notifications.
"""

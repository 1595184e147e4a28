"""Contacts domain - workspace contacts linked to bookings"""

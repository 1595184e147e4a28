"""Booking domain - BookingGate and the dashboard/embed booking endpoints"""

"""Availability domain - schedules, slot feasibility, conflict detection and slot previews"""

"""Attendance engine package.

Check-in/out state machine with GPS geofence and QR token verification,
breaks, short-window cancellation and per-business status summaries. Feature
modules (location, qr, attendance, ...) sit behind a thin Flask controller.
"""

# Lilium Test Suite
#
# This package contains:
# - Stress/load tests (Locust): tests/stress/locustfile.py
#
# Unit, route and concurrency tests live in backend/tests (pytest).

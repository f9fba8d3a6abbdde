"""
Geo-event alert pipeline - Test Suite

Test Organization:
- test_checksum.py, test_dedup.py: Event identity and ingestion
- test_matching.py: Site-alert matching and the stale sweep
- test_notifications.py: Emission and delivery
- test_pipeline.py: Queue, locks and run orchestration
- test_providers.py: Provider adapters and registry
- test_storage.py, test_models.py, test_config.py, test_utils.py
- test_api.py, test_cli.py: Outer surfaces

Fixtures are in tests/fixtures/:
- factories.py: Event, provider, site and alert method factories
- adapters.py: Scripted in-memory provider adapter
"""

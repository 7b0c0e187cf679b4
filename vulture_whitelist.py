# Vulture whitelist file
# This file contains false positives that vulture incorrectly flags as dead code.
# These are typically host-called entry points, Pydantic validators and fields, pytest fixtures, etc.
#
# Usage: python3 -m vulture ovirt_provider tests vulture_whitelist.py

# =============================================================================
# Entry points (called by the host orchestration layer)
# =============================================================================

initialize  # main.py - process start-up
refresh  # main.py - refresh entry point
verify_credentials  # main.py - credential verification entry point
supported_features  # main.py - capability query
invalidate_supported_features  # main.py - cache reset after manager edits
refresh_all  # provider_service.py - multi-manager refresh
with_provider_connection  # provider_service.py - scoped connection for operations
parse  # provider_service.py - payload parsing for persistence
supports_feature  # provider_service.py - capability gate

# =============================================================================
# Pydantic validators (registered via @field_validator)
# =============================================================================

default_path  # models.py - Endpoint.path
coerce_id  # models.py - OvirtManager.id
coerce_manager_id  # models.py - refresh target manager ids

# =============================================================================
# Pydantic model fields (read by the platform when persisting inventory)
# =============================================================================

_.auth_role  # models.py - Credentials
_.database_override  # models.py - VerifyOptions
_.datacenter_ref  # models.py - ClusterRecord
_.raw_power_state  # models.py - VmRecord
_.memory_mb  # models.py - VmRecord
_.cpu_total_cores  # models.py - VmRecord
_.host_ref  # models.py - VmRecord
_.cluster_ref  # models.py - HostRecord, VmRecord

# =============================================================================
# Settings (loaded from the environment by pydantic-settings)
# =============================================================================

_.env_file  # config.py - Settings.Config
_.case_sensitive  # config.py - Settings.Config
_.checked_at  # config_validation.py - ConfigValidationResult
_.has_warnings  # config_validation.py - ConfigValidationResult

# =============================================================================
# Pytest fixtures
# =============================================================================

endpoint  # conftest.py
credentials  # conftest.py
manager  # conftest.py
fake_factory  # conftest.py
metrics_manager  # test_provider_service.py

# =============================================================================
# Pydantic model_config (ConfigDict for Pydantic v2 configuration)
# =============================================================================
_.model_config  # Pydantic V2 configuration attribute

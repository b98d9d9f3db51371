"""
Metric Catalog

Exposed metric names. Dashboards and recording rules query these names
directly, so renaming one is a breaking change.
"""

from delpro_exporter.models import BASE_LABEL_NAMES

# Milking session metrics
METRIC_MILK_SESSIONS = "delpro_milk_sessions_total"
METRIC_MILK_YIELD_TOTAL = "delpro_milk_yield_liters_total"
METRIC_LAST_MILK_YIELD = "delpro_milk_last_yield_liters"
METRIC_LAST_YIELD_TIMESTAMP = "delpro_milk_last_yield_timestamp"
METRIC_CONDUCTIVITY = "delpro_milk_conductivity_mScm"
METRIC_SOMATIC_CELL_TOTAL = "delpro_milk_somatic_cell_total"
METRIC_LAST_SOMATIC_CELL = "delpro_milk_last_somatic_cell"
METRIC_LAST_SCC_TIMESTAMP = "delpro_milk_last_somatic_cell_timestamp"
METRIC_MILKING_DURATION = "delpro_milking_duration_seconds"
METRIC_LAST_MILKING_DURATION = "delpro_last_milking_duration_seconds"
METRIC_LAST_DURATION_TIMESTAMP = "delpro_last_milking_duration_timestamp"
METRIC_DAYS_IN_LACTATION = "delpro_animal_days_in_lactation"

# Teat metrics
METRIC_INCOMPLETE = "delpro_milking_incomplete_teat"
METRIC_KICKOFF = "delpro_milking_kickoff_teat"
METRIC_INCOMPLETE_TEATS = "delpro_milking_incomplete_teats"
METRIC_KICKOFF_TEATS = "delpro_milking_kickoff_teats"

# Device metrics
METRIC_DEVICE_UTILIZATION = "delpro_device_utilization_sessions_per_hour"

# Exporter self-monitoring
METRIC_UPDATE_CYCLES = "delpro_exporter_update_cycles_total"
METRIC_UPDATE_DURATION = "delpro_exporter_update_duration_seconds"
METRIC_LAST_PROCESSED_OID = "delpro_exporter_last_processed_oid"
METRIC_HISTORICAL_REQUESTS = "delpro_exporter_historical_requests_total"
METRIC_EXPORTER_INFO = "delpro_exporter"

SESSION_LABELS = list(BASE_LABEL_NAMES)
TEAT_LABELS = SESSION_LABELS + ["teat"]
TEATS_LABELS = SESSION_LABELS + ["teats"]
DEVICE_LABELS = ["milk_device_id"]

# Milking sessions typically last between 4 and 15 minutes
DURATION_BUCKETS = (60, 120, 180, 240, 300, 360, 420, 480, 600, 720, 900, 1200, 1800)

# Scheduler-wide settings. Override MAX_ITERATIONS per call through
# recalculate_project_schedule(..., max_iterations=N).

MAX_ITERATIONS = 50

DATE_FORMAT = "%Y-%m-%d"

# Environment variable read by the command-line validator.
LOG_LEVEL_ENV = "WORKPLAN_SCHEDULER_LOG_LEVEL"
DEFAULT_LOG_LEVEL = "WARNING"

# Keys of the authoring tool's project document
ACTIVITIES_KEY = "activities"

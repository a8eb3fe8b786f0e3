"""Configuration constants for deadline detection and task management."""

import os

# Text Segmentation
DEFAULT_MAX_CHUNK_SIZE = 500  # characters
NON_CONTENT_TAGS = ("script", "style", "noscript", "template")

# Detection Scheduling
DEFAULT_RESCAN_QUIET_INTERVAL = 1.0  # seconds

# Task Synthesis
DEFAULT_TASK_TITLE = "Detected Task"
TITLE_WORD_LIMIT = 8
TASK_ID_PREFIX = "task"

# Keywords marking a sentence as task-like; also used as tags
TASK_KEYWORDS = (
    "assignment",
    "homework",
    "project",
    "essay",
    "paper",
    "report",
    "submission",
    "task",
    "quiz",
    "exam",
    "test",
    "presentation",
    "lab",
    "workshop",
    "meeting",
    "conference",
    "interview",
    "application",
    "registration",
    "payment",
    "renewal",
)

# Relative phrases understood by the date normalizer, in precedence order
RELATIVE_PHRASE_DAYS = {
    "tomorrow": 1,
    "next week": 7,
    "next month": 30,
}

# Priority thresholds (days until deadline)
URGENT_THRESHOLD_DAYS = 1
HIGH_THRESHOLD_DAYS = 3
MEDIUM_THRESHOLD_DAYS = 7

# Reconciliation
DUPLICATE_DEADLINE_TOLERANCE_HOURS = 24
RECONCILE_MAX_ATTEMPTS = 2  # initial attempt + one retry with a fresh read

# Alerting
LAST_CALL_WINDOW_HOURS = 24
DIGEST_WINDOW_DAYS = 7
DEFAULT_ALERT_SWEEP_INTERVAL = 60 * 60  # seconds

# Storage Configuration
DEFAULT_DATABASE_PATH = os.environ.get(
    "DEADLINE_RADAR_DB", os.path.expanduser("~/.deadline-radar/tasks.db")
)
DEFAULT_WAL_MODE = True

# Database Schema Version
SCHEMA_VERSION = 1

# MCP Server Configuration
DEFAULT_MCP_HOST = "localhost"
DEFAULT_MCP_PORT = 3000
DEFAULT_MCP_SERVER_NAME = "deadline-radar"

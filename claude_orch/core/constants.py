"""Constants used throughout the orchestrator."""


# Runtime state
CONFIG_FILE_NAME = "orch.yaml"
TASKS_DB_FILE = "orch-tasks.json"
SOCKET_FILE = "orch-daemon.sock"
PID_FILE = "orch-daemon.pid"
DAEMON_LOG_FILE = "daemon.log"
DAEMON_ERROR_LOG_FILE = "daemon.error.log"

# Streaming output
MAX_STREAMING_OUTPUT = 100 * 1024  # 100KB
TRUNCATION_MARKER = "...[truncated]...\n"
STDERR_TAG = "[stderr] "

# Scheduling
DEFAULT_PENDING_LIMIT = 10
DEFAULT_LIST_LIMIT = 50

# Git side effects
BRANCH_SLUG_MAX_LENGTH = 30
PR_BODY_OUTPUT_EXCERPT = 2000
BRANCH_PREFIXES = {
    "issue-fix": "bug",
    "code-gen": "feat",
}
DEFAULT_BRANCH_PREFIX = "maintenance"

# Learnings
LEARNINGS_FILE = ".claude/learnings.md"
SKILLS_DIR = ".claude/skills"
LEARNINGS_HEADER = "# Learnings\n\nAuto-generated lessons from task retries.\n\n"
LESSON_OUTPUT_EXCERPT = 2000
NO_UPDATE_SENTINEL = "NO_UPDATE_NEEDED"
SKILL_FILES = {
    "pr-comment-fix": "ado-fix-review-comments.md",
    "resolution-review": "ado-review-resolution.md",
    "pr-review": "review-pr.md",
    "issue-fix": "fix-issue.md",
    "code-gen": "code-gen.md",
}

# Process hygiene
STALE_PROCESS_HOURS = 2.0
SHUTDOWN_GRACE_SECONDS = 10.0

# Poller
PROCESSED_KEYS_MAX = 10000
POLL_PAGE_SIZE = 10

# Timeout values
TERMINAL_LAUNCH_TIMEOUT = 10  # seconds
ADO_API_VERSION = "7.1"
HTTP_TIMEOUT = 30.0

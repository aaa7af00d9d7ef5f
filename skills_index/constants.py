"""Fixed paths, endpoints and timing constants"""

# Remote endpoints
GITHUB_API_BASE = "https://api.github.com"
GITHUB_RAW_BASE = "https://raw.githubusercontent.com"
GITHUB_WEB_BASE = "https://github.com"

# Branches tried, in order, when fetching repository content
BRANCH_FALLBACKS = ("main", "master")

# Filenames
SKILL_MANIFEST_FILENAME = "SKILL.md"
GLOBAL_LOCK_FILENAME = ".skill-lock.json"
LOCAL_LOCK_FILENAME = "skills-lock.json"
PROJECT_MANIFEST_FILENAME = "skills.json"
CONFIG_FILENAME = "skills-index.yaml"

# Directory names relative to home / project root
AGENTS_DIRNAME = ".agents"
CLAUDE_DIRNAME = ".claude"
SKILLS_DIRNAME = "skills"

# Remote folder used when a lock entry carries no skillPath
DEFAULT_REMOTE_SKILLS_DIR = "skills"

# Cache TTLs (seconds)
CACHE_TTL_GITHUB = 3600.0
CACHE_TTL_DETAIL = 1800.0

# Completion and watcher timing (seconds). Not user-configurable.
WATCH_DEBOUNCE_SECONDS = 0.3
OPERATION_TIMEOUT_SECONDS = 30.0
MIN_PROGRESS_SECONDS = 2.0

# External package-manager command
SKILLS_CLI = "npx skills"
CONFIRM_FLAG = "-y"

INSTALL_SCOPES = ("ask", "global", "project")

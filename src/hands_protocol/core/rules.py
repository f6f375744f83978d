"""Keyword tables and blocklists used by the planner and the safety gate.

The tables are plain tuples; ``default_planner_rules`` and
``default_safety_rules`` build frozen rule objects from them once at startup
and callers hand those objects to ``PlanGenerator`` / ``SafetyGate``.
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

TEMPLATE_TRIGGERS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("npm_project_init", ("npm", "node", "package.json", "init project", "new project")),
    ("git_repo_setup", ("git", "repository", "repo", "version control", "gitignore")),
    ("python_venv_setup", ("python", "venv", "virtual environment", "pip", "requirements")),
    ("env_config_setup", ("env", "environment variables", "dotenv", "config", "secrets")),
    ("api_scaffold", ("api", "rest", "express", "routes", "controllers", "backend")),
    ("api_security_setup", ("security", "rate limit", "cors", "helmet", "protection")),
    ("jwt_auth_setup", ("jwt", "auth", "authentication", "login", "register", "token")),
    ("database_setup", ("database", "sqlite", "sql", "migrations", "db")),
    ("redis_cache_setup", ("redis", "cache", "caching", "session")),
    ("docker_containerize", ("docker", "container", "dockerfile", "compose")),
    ("github_actions_cicd", ("github actions", "ci/cd", "cicd", "pipeline", "workflow")),
    ("deploy_static_site", ("deploy", "netlify", "github pages", "static", "hosting")),
    ("google_cloud_setup", ("google cloud", "gcp", "cloud run", "firebase")),
    ("websocket_setup", ("websocket", "socket", "real-time", "realtime", "socket.io")),
    ("email_setup", ("email", "nodemailer", "smtp", "mail", "send email")),
    ("file_upload_setup", ("upload", "file upload", "multer", "files")),
    ("logging_setup", ("logging", "winston", "pino", "logs", "log")),
    ("testing_setup", ("test", "jest", "pytest", "testing", "unit test")),
    ("frontend_setup", ("react", "next.js", "vite", "frontend", "ui")),
)

DANGER_KEYWORDS = ("delete", "remove", "rm ", "rm -rf", "drop", "force", "override", "reset --hard")
CAUTION_KEYWORDS = ("install", "write", "create", "modify", "update", "npm", "pip")

BLOCKED_COMMAND_PATTERNS = (
    # recursive force delete
    r"\brm\s+-[a-z]*r[a-z]*f",
    r"\brm\s+-[a-z]*f[a-z]*r",
    r"\brm\s+-r\s+-f\b",
    r"\brm\s+-f\s+-r\b",
    r"\brm\s+.*--recursive\b.*--force\b",
    r"\bdel\s+/s\s+/q\b",
    r"\brd\s+/s\s+/q\b",
    r"\bRemove-Item\b.*-Recurse\b.*-Force\b",
    # disk formatting / partitioning
    r"\bformat(\.com)?\s+[a-z]:",
    r"\bFormat-Volume\b",
    r"\bdiskpart\b",
    r"\bmkfs(\.\w+)?\b",
    r"\b(fdisk|parted|sfdisk|wipefs)\b",
    r"\bdd\s+.*\bof=/dev/",
    # registry
    r"\breg\s+delete\b",
    r"\breg\s+add\s+HKLM\b",
    r"\breg\s+add\s+HKCU\b",
    # user accounts
    r"\bnet\s+user\b.*\b(add|delete)\b",
    r"\b(useradd|userdel|adduser|deluser)\b",
    # execution policy
    r"\bSet-ExecutionPolicy\b",
    # shutdown / restart
    r"\bshutdown\b",
    r"\b(reboot|poweroff|halt)\b",
    r"\bStop-Computer\b",
    r"\bRestart-Computer\b",
    # forced process kill
    r"\btaskkill\b.*\s/f\b",
    r"\bStop-Process\b.*-Force\b",
    r"\b(kill|pkill|killall)\s+(-9|-KILL|-SIGKILL)\b",
    # destructive git
    r"\bgit\s+clean\s+-[a-z]*f",
    r"\bgit\s+reset\s+--hard\b",
    r"\bgit\s+push\b.*(--force\b|\s-f\b)",
)

PROTECTED_DIRS = (
    "C:/Windows",
    "C:/Program Files",
    "C:/Program Files (x86)",
    "/etc",
    "/bin",
    "/sbin",
    "/boot",
    "/usr",
    "/lib",
    "/sys",
    "/proc",
    "/dev",
    "/System",
    "~/.ssh",
    "~/.gnupg",
    "~/.aws",
    "~/.hands_protocol",
    "~/Documents",
    "~/Desktop",
)

PROTECTED_FILE_FRAGMENTS = (
    "credentials",
    "secrets",
    ".env",
    "password",
    "token",
    "id_rsa",
    "id_ed25519",
    ".npmrc",
    ".pypirc",
    ".netrc",
    ".git/config",
    ".gitconfig",
    "package.json",
    "package-lock.json",
    "yarn.lock",
    "requirements.txt",
    "poetry.lock",
)


@dataclass(frozen=True)
class PlannerRules:
    template_triggers: tuple[tuple[str, tuple[str, ...]], ...]
    danger_keywords: tuple[str, ...]
    caution_keywords: tuple[str, ...]


@dataclass(frozen=True)
class SafetyRules:
    blocked_commands: tuple[re.Pattern, ...]
    protected_dirs: tuple[str, ...]
    protected_files: tuple[str, ...]


def default_planner_rules() -> PlannerRules:
    return PlannerRules(
        template_triggers=TEMPLATE_TRIGGERS,
        danger_keywords=DANGER_KEYWORDS,
        caution_keywords=CAUTION_KEYWORDS,
    )


def default_safety_rules(extra_protected_dirs: Iterable[str] = ()) -> SafetyRules:
    dirs = [str(Path(d).expanduser()) if d.startswith("~") else d for d in PROTECTED_DIRS]
    dirs.extend(extra_protected_dirs)
    return SafetyRules(
        blocked_commands=tuple(re.compile(p, re.IGNORECASE) for p in BLOCKED_COMMAND_PATTERNS),
        protected_dirs=tuple(dirs),
        protected_files=PROTECTED_FILE_FRAGMENTS,
    )

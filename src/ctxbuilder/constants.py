from enum import Enum

# --- Log and Debug ---
# Short aliases for module names to keep CLI/env concise
LOG_ALIAS_MAP = {
    "mgr": "ctxbuilder.builder.manager",
    "manager": "ctxbuilder.builder.manager",
    "track": "ctxbuilder.builder.tracker",
    "tracker": "ctxbuilder.builder.tracker",
    "recipe": "ctxbuilder.builder.recipe",
    "rcp": "ctxbuilder.builder.recipe",
    "tar": "ctxbuilder.builder.archiver",
    "arc": "ctxbuilder.builder.archiver",
    "res": "ctxbuilder.builder.resolver",
    "rsv": "ctxbuilder.builder.resolver",
    "fset": "ctxbuilder.builder.fileset",
    "io": "ctxbuilder.io",
    "fs": "ctxbuilder.io.fs",
    "conf": "ctxbuilder.config",
    "pre": "ctxbuilder.preprocess",
}

# Top-level modules within ctxbuilder for auto-prefixing
KNOWN_TOP_MODULES = {
    "builder",
    "io",
    "datacls",
    "utils",
    "exceptions",
    "config",
    "preprocess",
    "cli",
}

LOG_LEVELS_ENV = "CTXB_LOG_LEVELS"


# --- Filenames and Paths ---
# Assembly name, also used as the content directory inside the output directory
ASSEMBLY_NAME = "maven"
DOCKERFILE_NAME = "Dockerfile"
DOCKER_BUILD_ARCHIVE = "docker-build"
CHANGED_FILES_DIR = "changed-files"
CHANGED_FILES_ARCHIVE = "changed-files.tar"

# Marker files recognized inside a recipe directory
DOCKER_IGNORE = ".maven-dockerignore"
DOCKER_EXCLUDE = ".maven-dockerexclude"
DOCKER_INCLUDE = ".maven-dockerinclude"

# Per-image subdirectories below the build output root
BUILD_SUBDIR = "build"
WORK_SUBDIR = "work"
TMP_SUBDIR = "tmp"

DEFAULT_OUTPUT_DIR = "target/docker"
DEFAULT_SOURCE_DIR = "src/main/docker"
DEFAULT_BUILD_DIR = "target"
DEFAULT_TARGET_DIR = "/maven"

# --- Assembly pass ids ---
PASS_DOCKER = "docker"
PASS_TRACKER = "tracker"

# --- Archive normalization ---
# Every entry gets the same timestamp and owner so that identical inputs produce identical archives
ARCHIVE_MTIME = 0
ARCHIVE_UID = 0
ARCHIVE_GID = 0
ZIP_DATE_TIME = (1980, 1, 1, 0, 0, 0)
EXEC_BITS = 0o111

# Files a file set skips when it uses default excludes
DEFAULT_EXCLUDES = [
    "**/*~",
    "**/#*#",
    "**/.#*",
    "**/%*%",
    "**/._*",
    "**/.git/**",
    "**/.gitignore",
    "**/.gitattributes",
    "**/.svn/**",
    "**/.hg/**",
    "**/.bzr/**",
    "**/CVS/**",
    "**/.DS_Store",
    "**/Thumbs.db",
]


class Compression(str, Enum):
    """Compression of the final build archive"""
    NONE = "none"
    GZIP = "gzip"
    BZIP2 = "bzip2"

    @property
    def file_suffix(self) -> str:
        return {
            Compression.NONE: "tar",
            Compression.GZIP: "tar.gz",
            Compression.BZIP2: "tar.bz2",
        }[self]


class AssemblyMode(str, Enum):
    """How the resolved assembly is placed into the output directory"""
    DIR = "dir"
    TAR = "tar"
    TGZ = "tgz"
    ZIP = "zip"

    @classmethod
    def _missing_(cls, value):
        aliases = {"tar-gz": cls.TGZ, "tar.gz": cls.TGZ, "directory": cls.DIR}
        return aliases.get(str(value).lower())

    @property
    def is_archive(self) -> bool:
        return self is not AssemblyMode.DIR

    @property
    def extension(self) -> str:
        return "" if self is AssemblyMode.DIR else self.value


class PermissionMode(str, Enum):
    """Permission normalization applied to files in the build archive"""
    KEEP = "keep"
    EXEC = "exec"
    AUTO = "auto"

    @classmethod
    def _missing_(cls, value):
        aliases = {"exec-all": cls.EXEC}
        return aliases.get(str(value).lower())


class HealthCheckMode(str, Enum):
    CMD = "cmd"
    NONE = "none"


class ContextMode(str, Enum):
    """Where the recipe of a build context comes from"""
    NO_ASSEMBLY = "no-assembly"
    USER_RECIPE_DIR = "user-recipe-dir"
    GENERATED_RECIPE = "generated-recipe"

"""
Recipe (Dockerfile) generation.

`RecipeBuilder` collects the parts of a recipe in any order and renders
them in a fixed order:

    FROM, MAINTAINER, ENV, LABEL, EXPOSE, COPY, WORKDIR, RUN,
    VOLUME, HEALTHCHECK, CMD, ENTRYPOINT, USER

With `optimise` set, adjacent instructions of a mergeable keyword are
coalesced into one after rendering, unless a later ENV value reads a key
set earlier in the group or a RUN is in exec form. Nothing is ever
reordered.
"""
import re
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from .. import constants
from ..config import Arguments, HealthCheckModel
from ..constants import HealthCheckMode
from ..io.fs import FileSystem
from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_PORT_RE = re.compile(r"^\d{1,5}(/(tcp|udp))?$")
_PLAIN_RE = re.compile(r"^[\w./:@,+%-]+$")
_VAR_REF_RE = re.compile(r"\$\{?(\w+)")

# keyword -> separator used when adjacent instructions are merged
MERGEABLE = {
    "RUN": " && ",
    "ENV": " ",
    "LABEL": " ",
    "EXPOSE": " ",
}


@dataclass(frozen=True)
class Instruction:
    keyword: str
    args: str

    def render(self) -> str:
        return f"{self.keyword} {self.args}"


def _quote(value: str) -> str:
    return value if _PLAIN_RE.match(value) else json.dumps(value)


def _render_args(args: Arguments) -> str:
    if args.is_exec:
        return json.dumps(args.exec_args)
    return args.shell


class RecipeBuilder:
    """Incrementally built Dockerfile"""

    def __init__(self):
        self._base_image: Optional[str] = None
        self._maintainer: Optional[str] = None
        self._env: Dict[str, str] = {}
        self._labels: Dict[str, str] = {}
        self._ports: List[str] = []
        self._run: List[str] = []
        self._volumes: List[str] = []
        self._user: Optional[str] = None
        self._workdir: Optional[str] = None
        self._healthcheck: Optional[HealthCheckModel] = None
        self._copy: Optional[Instruction] = None
        self._cmd: Optional[Arguments] = None
        self._entrypoint: Optional[Arguments] = None
        self._optimise = False

    def maintainer(self, maintainer: Optional[str]) -> "RecipeBuilder":
        self._maintainer = maintainer
        return self

    def env(self, values: Optional[Dict[str, str]]) -> "RecipeBuilder":
        self._env.update(values or {})
        return self

    def labels(self, values: Optional[Dict[str, str]]) -> "RecipeBuilder":
        self._labels.update(values or {})
        return self

    def expose(self, ports: Optional[List[str]]) -> "RecipeBuilder":
        for port in ports or []:
            port = str(port).strip()
            if not _PORT_RE.match(port) or not 0 < int(port.split("/")[0]) <= 65535:
                raise ConfigurationError(f"Invalid port '{port}', expected <port>[/tcp|/udp]")
            self._ports.append(port)
        return self

    def run(self, commands: Optional[List[str]]) -> "RecipeBuilder":
        self._run.extend(c for c in commands or [] if c and c.strip())
        return self

    def volumes(self, volumes: Optional[List[str]]) -> "RecipeBuilder":
        for volume in volumes or []:
            if volume not in self._volumes:
                self._volumes.append(volume)
        return self

    def user(self, user: Optional[str]) -> "RecipeBuilder":
        self._user = user
        return self

    def workdir(self, workdir: Optional[str]) -> "RecipeBuilder":
        self._workdir = workdir
        return self

    def health_check(self, healthcheck: Optional[HealthCheckModel]) -> "RecipeBuilder":
        self._healthcheck = healthcheck
        return self

    def add(self, source: str, target_dir: str, user: Optional[str] = None,
            export_target_dir: bool = False) -> "RecipeBuilder":
        """The one instruction that copies the assembly into the image"""
        chown = f"--chown={user} " if user else ""
        self._copy = Instruction("COPY", f"{chown}{source} {target_dir}")
        if export_target_dir:
            self.volumes([target_dir])
        return self

    def cmd(self, cmd: Optional[Arguments]) -> "RecipeBuilder":
        self._cmd = cmd
        return self

    def entrypoint(self, entrypoint: Optional[Arguments]) -> "RecipeBuilder":
        self._entrypoint = entrypoint
        return self

    def optimise(self, optimise: bool = True) -> "RecipeBuilder":
        self._optimise = optimise
        return self

    def base_image(self, image: Optional[str]) -> "RecipeBuilder":
        if image is not None and not image.strip():
            raise ConfigurationError("Base image must not be blank")
        self._base_image = image
        return self

    def instructions(self) -> List[Instruction]:
        """The rendered instruction sequence, optimised if requested"""
        if not self._base_image:
            raise ConfigurationError("No base image given, set 'from' in the build configuration")

        out = [Instruction("FROM", self._base_image)]
        if self._maintainer:
            out.append(Instruction("MAINTAINER", self._maintainer))
        out += [Instruction("ENV", f"{k}={_quote(v)}") for k, v in self._env.items()]
        out += [Instruction("LABEL", f"{_quote(k)}={_quote(v)}") for k, v in self._labels.items()]
        out += [Instruction("EXPOSE", p) for p in self._ports]
        if self._copy:
            out.append(self._copy)
        if self._workdir:
            out.append(Instruction("WORKDIR", self._workdir))
        out += [Instruction("RUN", c) for c in self._run]
        if self._volumes:
            out.append(Instruction("VOLUME", json.dumps(self._volumes)))
        if self._healthcheck:
            out.append(self._health_check_instruction(self._healthcheck))
        if self._cmd:
            out.append(Instruction("CMD", _render_args(self._cmd)))
        if self._entrypoint:
            out.append(Instruction("ENTRYPOINT", _render_args(self._entrypoint)))
        if self._user:
            out.append(Instruction("USER", self._user))

        if self._optimise:
            out = optimise_instructions(out)
        return out

    @staticmethod
    def _health_check_instruction(hc: HealthCheckModel) -> Instruction:
        if hc.mode is HealthCheckMode.NONE:
            return Instruction("HEALTHCHECK", "NONE")
        opts = []
        if hc.interval:
            opts.append(f"--interval={hc.interval}")
        if hc.timeout:
            opts.append(f"--timeout={hc.timeout}")
        if hc.start_period:
            opts.append(f"--start-period={hc.start_period}")
        if hc.retries is not None:
            opts.append(f"--retries={hc.retries}")
        opts.append(f"CMD {_render_args(hc.cmd)}")
        return Instruction("HEALTHCHECK", " ".join(opts))

    def content(self) -> str:
        return "".join(f"{i.render()}\n" for i in self.instructions())

    def write(self, directory: Path, fs: FileSystem) -> Path:
        """Write the recipe as `Dockerfile` into `directory`"""
        content = self.content()
        path = Path(directory) / constants.DOCKERFILE_NAME
        fs.write_text(path, content)
        logger.info(f"[Recipe] Dockerfile written to {path}")
        logger.debug(f"[Recipe] Dockerfile content:\n{content}")
        return path


def _env_key(args: str) -> str:
    return args.split("=", 1)[0]


def _can_merge(prev: Instruction, inst: Instruction, env_keys: set) -> bool:
    if prev.keyword != inst.keyword or inst.keyword not in MERGEABLE:
        return False
    if inst.keyword == "RUN":
        # exec form cannot be chained with &&
        return not prev.args.lstrip().startswith("[") and not inst.args.lstrip().startswith("[")
    if inst.keyword == "ENV":
        # a value must see keys set earlier in the same group
        return not env_keys.intersection(_VAR_REF_RE.findall(inst.args))
    return True


def optimise_instructions(instructions: List[Instruction]) -> List[Instruction]:
    """Coalesce adjacent instructions of the same mergeable keyword that do not depend on each other"""
    merged: List[Instruction] = []
    env_keys: set = set()
    for inst in instructions:
        prev = merged[-1] if merged else None
        if prev and _can_merge(prev, inst, env_keys):
            sep = MERGEABLE[inst.keyword]
            merged[-1] = Instruction(inst.keyword, f"{prev.args}{sep}{inst.args}")
        else:
            merged.append(inst)
            env_keys = set()
        if inst.keyword == "ENV":
            env_keys.add(_env_key(inst.args))
    if len(merged) < len(instructions):
        logger.debug(f"[Recipe] Optimised {len(instructions)} instructions into {len(merged)}")
    return merged

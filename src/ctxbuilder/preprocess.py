import logging
import yaml
from pathlib import Path
from typing import Dict, Any, List, Union
from jinja2 import Environment, TemplateError

from .io.fs import FileSystem
from .utils.merge import deep_merge
from .exceptions import (
    ConfigFileMissingError,
    ConfigParsingError,
    ConfigValidationError,
    CtxPathNotFoundError,
)

logger = logging.getLogger(__name__)


class Preprocessor:
    """
    Recursively processes configurations, handling 'include' directives and expanding image comprehensions.
    """
    def __init__(self, raw_config: Dict, config_path: Union[str, Path], fs: FileSystem):
        self.raw_config = raw_config
        self.config_path = Path(config_path)
        self.jinja_env = Environment()
        self.fs = fs

    def run(self) -> Dict:
        """
        Executes all preprocessing steps and returns the processed configuration,
        with `images` as the list of `{name, build}` items the models expect.
        """
        logger.info(f"[Preprocess] Expanding {self.config_path}")
        expanded = self._process_includes(seen=[])

        if 'images' in expanded:
            expanded['images'] = [
                {'name': name, **conf} for name, conf in expanded['images'].items()
            ]

        logger.debug(f"[Preprocess] Done with {self.config_path}")
        return expanded

    def _process_includes(self, seen: List[Path]) -> Dict:
        """
        Handles the 'include' directive, images are kept as a name -> definition mapping while merging.
        """
        current_config = dict(self.raw_config)
        if self.config_path in seen:
            chain = " -> ".join(str(p) for p in seen + [self.config_path])
            raise ConfigValidationError(f"Circular include: {chain}")
        seen = seen + [self.config_path]

        include_files = current_config.pop('include', None) or []
        if not isinstance(include_files, list):
            include_files = [include_files]

        merged_from_includes: Dict[str, Any] = {}
        for entry in include_files:
            path = Path(entry)
            if not path.is_absolute():
                path = self.config_path.parent / path

            logger.debug(f"Including and preprocessing config file from '{path}'")
            try:
                included_config_raw = yaml.safe_load(self.fs.read_text(path)) or {}
            except CtxPathNotFoundError as e:
                raise ConfigFileMissingError(f"Included file not found: {path}") from e
            except yaml.YAMLError as e:
                raise ConfigParsingError(f"Error parsing included YAML file {path}: {e}") from e
            if not isinstance(included_config_raw, dict):
                raise ConfigParsingError(f"Included file {path} must contain a dictionary.")

            included = Preprocessor(included_config_raw, path, self.fs)._process_includes(seen)
            merged_from_includes = deep_merge(merged_from_includes, included)

        if 'images' in current_config:
            current_config['images'] = self._preprocess_images(current_config['images'])

        return deep_merge(merged_from_includes, current_config)

    def _render(self, item: Any, context: Dict) -> Any:
        """Render every string inside `item` as a Jinja2 template"""
        if isinstance(item, str):
            return self.jinja_env.from_string(item).render(context)
        if isinstance(item, list):
            return [self._render(v, context) for v in item]
        if isinstance(item, dict):
            return {k: self._render(v, context) for k, v in item.items()}
        return item

    @staticmethod
    def _iteration_values(for_each: Any) -> List:
        """`for_each` is either a list of values or {'range': n | [start, stop(, step)]}"""
        if isinstance(for_each, list):
            return for_each
        bounds = for_each.get('range') if isinstance(for_each, dict) else None
        if isinstance(bounds, int) and not isinstance(bounds, bool):
            return list(range(bounds))
        if isinstance(bounds, list) and bounds and all(isinstance(b, int) for b in bounds):
            try:
                return list(range(*bounds))
            except (TypeError, ValueError) as e:
                raise ConfigValidationError(f"Invalid 'range' in for_each: {bounds}: {e}") from e
        raise ConfigValidationError(f"Invalid 'for_each': {for_each}. Expected a list or {{'range': n | [start, stop]}}.")

    def _preprocess_images(self, images_config: Union[List, Dict]) -> Dict[str, Any]:
        """
        Normalizes images to a mapping name -> definition (without the name).

        Supported list items:
        - Comprehension blocks: {'name': <template>, 'for_each': <iterable>, 'template': <conf>}
        - Explicit named dicts: {'name': <name>, 'build': ...}
        - Single-key dict shorthand: {<name>: <build>}
        """
        if images_config is None:
            return {}
        if isinstance(images_config, dict):
            final: Dict[str, Any] = {}
            for name, build in images_config.items():
                if build is not None and not isinstance(build, dict):
                    raise ConfigValidationError(f"Image '{name}' build section must be a dictionary, got {type(build).__name__}.")
                final[name] = {'build': build or {}}
            return final

        if not isinstance(images_config, list):
            raise ConfigValidationError(f"'images' must be a dictionary or a list, but got {type(images_config).__name__}.")

        final = {}
        for item in images_config:
            if isinstance(item, dict) and 'for_each' in item:
                for name, conf in self._expand_comprehension(item):
                    self._add_unique(final, name, conf, "an image comprehension")

            elif isinstance(item, dict) and 'name' in item:
                conf = {k: v for k, v in item.items() if k != 'name'}
                self._add_unique(final, item['name'], conf, "images definition")

            elif isinstance(item, dict) and len(item) == 1:
                name, build = next(iter(item.items()))
                if build is not None and not isinstance(build, dict):
                    raise ConfigValidationError(f"Image '{name}' build section must be a dictionary, got {type(build).__name__}.")
                self._add_unique(final, name, {'build': build or {}}, "images definition")

            else:
                raise ConfigValidationError(f"Invalid item in 'images' list: {item}. Must be a comprehension block, explicit dict with 'name', or a single-key dict shorthand.")

        return final

    def _expand_comprehension(self, item: Dict[str, Any]):
        name_tpl, values_def, build_tpl = item.get("name"), item.get("for_each"), item.get("template")

        if not name_tpl or values_def is None or not build_tpl:
            raise ConfigValidationError(f"Invalid image comprehension block: {item}. Must contain 'name', 'for_each', and 'template' keys.")

        values = self._iteration_values(values_def)
        logger.debug(f"[Preprocess] '{name_tpl}' expands to {len(values)} images")

        for i, value in enumerate(values):
            context = {'i': i, 'value': value}
            try:
                name = self._render(name_tpl, context)
                build = self._render(build_tpl, context)
            except TemplateError as e:
                raise ConfigValidationError(f"Cannot render image comprehension '{name_tpl}': {e}") from e
            yield name, {'build': build}

    @staticmethod
    def _add_unique(final: Dict[str, Any], name: str, conf: Dict[str, Any], origin: str):
        if name in final:
            raise ConfigValidationError(f"Duplicate image name '{name}' in {origin}.")
        final[name] = conf

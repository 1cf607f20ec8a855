import pytest
import yaml
from pathlib import Path
from ctxbuilder.config import Config, Arguments, BuildImageModel
from ctxbuilder.constants import AssemblyMode, PermissionMode, Compression
from ctxbuilder.exceptions import (
    ConfigurationError,
    ConfigFileMissingError,
    ConfigParsingError,
    ConfigValidationError,
    FilesystemError,
)
import copy

BASE_CONFIG = {
    'project': {
        'base_dir': '.',
        'artifact': 'target/app.jar',
    },
    'images': [
        {
            'name': 'org/app:1.0',
            'build': {
                'from': 'eclipse-temurin:21',
                'ports': [8080, '53/udp'],
                'env': {'JAVA_OPTS': '-Xmx1g', 'DEBUG': False},
                'cmd': ['java', '-jar', '/maven/app.jar'],
                'assembly': {
                    'descriptor_ref': 'artifact',
                    'mode': 'tar-gz',
                    'permissions': 'exec-all',
                },
            },
        },
        {
            'name': 'tools',
            'build': {
                'dockerfile_dir': 'tools',
                'compression': 'gzip',
            },
        },
    ],
}

@pytest.fixture
def create_config_file(tmp_path: Path):
    """A pytest fixture to create a temporary ctxb.yml file."""
    def _create_file(config_data: dict) -> Path:
        config_file = tmp_path / "ctxb.yml"
        with open(config_file, 'w') as f:
            yaml.dump(config_data, f)
        return config_file
    return _create_file

class TestConfigLoading:
    """Tests for basic loading and validation success/failure."""

    def test_load_valid_config_successfully(self, create_config_file):
        config_path = create_config_file(BASE_CONFIG)
        config = Config(str(config_path))

        assert [i.name for i in config.images] == ['org/app:1.0', 'tools']
        build = config.image('org/app:1.0').build
        assert build.from_image == 'eclipse-temurin:21'
        assert build.ports == ['8080', '53/udp']
        assert build.env == {'JAVA_OPTS': '-Xmx1g', 'DEBUG': 'False'}
        assert build.cmd.exec_args == ['java', '-jar', '/maven/app.jar']
        assert build.assembly.mode is AssemblyMode.TGZ
        assert build.assembly.permissions is PermissionMode.EXEC
        assert config.image('tools').build.compression is Compression.GZIP

    def test_relative_base_dir_resolves_against_config_dir(self, create_config_file):
        config_path = create_config_file(BASE_CONFIG)
        config = Config(str(config_path))

        assert config.project.base_dir == config_path.parent / '.'
        assert config.project.artifact_path == config_path.parent / 'target' / 'app.jar'
        assert config.project.output_path == config_path.parent / 'target' / 'docker'

    def test_parent_base_dir_is_normalized(self, tmp_path):
        config_path = tmp_path / "cfg" / "ctxb.yml"
        config_path.parent.mkdir()
        data = copy.deepcopy(BASE_CONFIG)
        data['project']['base_dir'] = '..'
        config_path.write_text(yaml.dump(data))

        config = Config(str(config_path))

        assert config.project.base_dir == tmp_path
        assert ".." not in config.project.output_path.parts

    def test_file_not_found_raises_error(self, tmp_path):
        with pytest.raises(ConfigFileMissingError, match="Configuration file not found"):
            Config(str(tmp_path / "non_existent_file.yml"))

    def test_undecodable_config_raises_filesystem_error(self, tmp_path):
        config_file = tmp_path / "latin1.yml"
        config_file.write_bytes(b"project:\n  base_dir: caf\xe9\n")

        with pytest.raises(FilesystemError, match="latin1.yml"):
            Config(str(config_file))

    def test_invalid_yaml_raises_error(self, tmp_path):
        config_file = tmp_path / "invalid.yml"
        config_file.write_text("key: value: another") # Invalid YAML

        with pytest.raises(ConfigParsingError, match="Error parsing YAML file"):
            Config(str(config_file))

    def test_non_mapping_document_raises_error(self, tmp_path):
        config_file = tmp_path / "list.yml"
        config_file.write_text("- a\n- b\n")

        with pytest.raises(ConfigParsingError, match="containing a dictionary"):
            Config(str(config_file))

    def test_unknown_image_raises_error(self, create_config_file):
        config = Config(str(create_config_file(BASE_CONFIG)))

        with pytest.raises(ConfigurationError, match="No image named 'nope'"):
            config.image('nope')


class TestConfigValidationLogic:
    """Tests for cross-field validation of images and assemblies."""

    def test_duplicate_image_name_raises_error(self, create_config_file):
        invalid_config = copy.deepcopy(BASE_CONFIG)
        invalid_config['images'].append({'name': 'tools'})
        config_path = create_config_file(invalid_config)

        with pytest.raises(ConfigValidationError, match="Duplicate image name 'tools'"):
            Config(str(config_path))

    def test_assembly_with_two_sources_raises_error(self, create_config_file):
        invalid_config = copy.deepcopy(BASE_CONFIG)
        invalid_config['images'][0]['build']['assembly']['descriptor'] = 'assembly.yml'
        config_path = create_config_file(invalid_config)

        with pytest.raises(ConfigValidationError, match="only one of"):
            Config(str(config_path))

    def test_relative_target_dir_raises_error(self, create_config_file):
        invalid_config = copy.deepcopy(BASE_CONFIG)
        invalid_config['images'][0]['build']['assembly']['target_dir'] = 'maven'
        config_path = create_config_file(invalid_config)

        with pytest.raises(ConfigValidationError, match="absolute container path"):
            Config(str(config_path))

    def test_invalid_assembly_user_raises_error(self, create_config_file):
        invalid_config = copy.deepcopy(BASE_CONFIG)
        invalid_config['images'][0]['build']['assembly']['user'] = 'a:b:c'
        config_path = create_config_file(invalid_config)

        with pytest.raises(ConfigValidationError, match="user:group"):
            Config(str(config_path))

    def test_healthcheck_cmd_mode_needs_cmd(self, create_config_file):
        invalid_config = copy.deepcopy(BASE_CONFIG)
        invalid_config['images'][0]['build']['healthcheck'] = {'interval': '5s'}
        config_path = create_config_file(invalid_config)

        with pytest.raises(ConfigValidationError, match="requires a 'cmd'"):
            Config(str(config_path))

    def test_healthcheck_rejects_bad_duration(self, create_config_file):
        invalid_config = copy.deepcopy(BASE_CONFIG)
        invalid_config['images'][0]['build']['healthcheck'] = {'cmd': 'true', 'interval': 'often'}
        config_path = create_config_file(invalid_config)

        with pytest.raises(ConfigValidationError, match="Invalid health check duration"):
            Config(str(config_path))

    def test_structural_error_is_wrapped(self, create_config_file):
        invalid_config = copy.deepcopy(BASE_CONFIG)
        invalid_config['images'][0]['build']['optimise'] = {'not': 'a bool'}
        config_path = create_config_file(invalid_config)

        with pytest.raises(ConfigValidationError, match="Configuration validation failed"):
            Config(str(config_path))


class TestBuildModel:
    def test_arguments_from_plain_values(self):
        assert Arguments.model_validate("echo hi").shell == "echo hi"
        assert Arguments.model_validate(["echo", "hi"]).exec_args == ["echo", "hi"]

    def test_arguments_need_exactly_one_form(self):
        with pytest.raises(ConfigValidationError):
            Arguments.model_validate({})
        with pytest.raises(ConfigValidationError):
            Arguments.model_validate({"shell": "a", "exec": ["b"]})

    def test_structured_cmd_wins_over_legacy_command(self):
        both = BuildImageModel.model_validate({"cmd": ["run.sh"], "command": "legacy.sh"})
        legacy = BuildImageModel.model_validate({"command": "legacy.sh"})

        assert both.effective_cmd().exec_args == ["run.sh"]
        assert legacy.effective_cmd() == Arguments(shell="legacy.sh")
        assert BuildImageModel().effective_cmd() is None

    def test_dockerfile_path_resolution(self, project):
        in_dir = BuildImageModel.model_validate({"dockerfile_dir": "web", "dockerfile": "Containerfile"})
        plain = BuildImageModel.model_validate({"dockerfile": "Dockerfile"})
        absolute = BuildImageModel.model_validate({"dockerfile": "/opt/Dockerfile"})

        assert in_dir.dockerfile_path(project) == project.base_dir / "src/main/docker/web/Containerfile"
        assert plain.dockerfile_path(project) == project.base_dir / "src/main/docker/Dockerfile"
        assert absolute.dockerfile_path(project) == Path("/opt/Dockerfile")
        with pytest.raises(ConfigurationError):
            BuildImageModel().dockerfile_path(project)

import pytest

from ctxbuilder.builder.layout import compute_dirs
from ctxbuilder.builder.resolver import DescriptorResolver
from ctxbuilder.config import AssemblyModel, BuildImageModel
from ctxbuilder.datacls import AssemblySource
from ctxbuilder.exceptions import AssemblyResolutionError, ConfigurationError, ConfigValidationError


@pytest.fixture
def source_for(project):
    def _source(assembly: dict, pass_id: str = "docker", params=None) -> AssemblySource:
        params = params or project
        model = AssemblyModel.model_validate(assembly)
        return AssemblySource(
            pass_id=pass_id,
            params=params,
            build_dirs=compute_dirs("app", params),
            assembly=model,
            build=BuildImageModel(assembly=model),
        )
    return _source


@pytest.fixture
def resolver(fs):
    return DescriptorResolver(fs)


class TestInlineDescriptor:
    def test_file_sets_and_files(self, project, make_file, resolver, source_for):
        make_file(project.base_dir / "conf" / "app.properties")
        make_file(project.base_dir / "conf" / "nested" / "log.xml")
        make_file(project.base_dir / "conf" / "notes.txt~")
        make_file(project.base_dir / "bin" / "start.sh")

        assembly = resolver.resolve(source_for({
            "inline": {
                "file_sets": [{"directory": "conf", "output_directory": "etc"}],
                "files": [{"source": "bin/start.sh", "output_directory": "bin", "dest_name": "run"}],
            }
        }))

        assert assembly.id == "docker"
        assert assembly.dests == ["etc/app.properties", "etc/nested/log.xml", "bin/run"]
        assert assembly.entries[2].source == project.base_dir / "bin" / "start.sh"

    def test_file_set_filters(self, project, make_file, resolver, source_for):
        for name in ("a.py", "b.py", "c.txt", "tests/test_a.py"):
            make_file(project.base_dir / "app" / name)

        assembly = resolver.resolve(source_for({
            "inline": {"file_sets": [{"directory": "app", "includes": ["*.py"], "excludes": ["tests/"]}]}
        }))

        assert assembly.dests == ["a.py", "b.py"]

    def test_missing_file_set_directory(self, resolver, source_for):
        with pytest.raises(AssemblyResolutionError, match="does not exist"):
            resolver.resolve(source_for({"inline": {"file_sets": [{"directory": "nope"}]}}))

    def test_missing_file(self, resolver, source_for):
        with pytest.raises(AssemblyResolutionError, match="does not exist"):
            resolver.resolve(source_for({"inline": {"files": [{"source": "nope.jar"}]}}))

    def test_escaping_destination(self, project, make_file, resolver, source_for):
        make_file(project.base_dir / "a.txt")

        with pytest.raises(AssemblyResolutionError, match="leaves the assembly directory"):
            resolver.resolve(source_for({"inline": {"files": [{"source": "a.txt", "output_directory": "../.."}]}}))

    def test_pass_id_is_the_only_difference(self, project, make_file, resolver, source_for):
        make_file(project.base_dir / "a.txt")
        config = {"inline": {"files": [{"source": "a.txt"}]}}

        docker = resolver.resolve(source_for(config, "docker"))
        tracker = resolver.resolve(source_for(config, "tracker"))

        assert docker.entries == tracker.entries
        assert (docker.id, tracker.id) == ("docker", "tracker")


class TestDescriptorFile:
    def test_single_mapping(self, project, make_file, resolver, source_for):
        make_file(project.base_dir / "target" / "app.jar")
        make_file(project.source_path / "assembly.yml", "id: app\nfiles:\n  - source: target/app.jar\n")

        assembly = resolver.resolve(source_for({"descriptor": "assembly.yml"}))

        assert assembly.dests == ["app.jar"]

    def test_list_with_one_descriptor(self, project, make_file, resolver, source_for):
        make_file(project.base_dir / "target" / "app.jar")
        make_file(project.source_path / "assembly.yml", "- files:\n    - source: target/app.jar\n")

        assert resolver.resolve(source_for({"descriptor": "assembly.yml"})).dests == ["app.jar"]

    def test_more_than_one_descriptor(self, project, make_file, resolver, source_for):
        make_file(project.source_path / "assembly.yml", "- id: a\n- id: b\n")

        with pytest.raises(ConfigurationError, match=r"Only one assembly .*\(and not 2\)"):
            resolver.resolve(source_for({"descriptor": "assembly.yml"}))

    def test_missing_descriptor_file(self, resolver, source_for):
        with pytest.raises(AssemblyResolutionError, match="Error reading assembly descriptor"):
            resolver.resolve(source_for({"descriptor": "missing.yml"}))

    def test_invalid_descriptor(self, project, make_file, resolver, source_for):
        make_file(project.source_path / "assembly.yml", "files: 42\n")

        with pytest.raises(ConfigValidationError):
            resolver.resolve(source_for({"descriptor": "assembly.yml"}))


class TestDescriptorRefs:
    def test_unknown_ref(self, resolver, source_for):
        with pytest.raises(AssemblyResolutionError, match="Unknown descriptor ref 'nope'"):
            resolver.resolve(source_for({"descriptor_ref": "nope"}))

    def test_artifact_ref(self, project, make_file, resolver, source_for):
        make_file(project.base_dir / "target" / "app-1.0.jar")
        params = project.model_copy(update={"artifact": "target/app-1.0.jar"})

        assembly = resolver.resolve(source_for({"descriptor_ref": "artifact"}, params=params))

        assert assembly.dests == ["app-1.0.jar"]

    def test_artifact_ref_without_artifact(self, resolver, source_for):
        with pytest.raises(AssemblyResolutionError, match="'project.artifact' is not configured"):
            resolver.resolve(source_for({"descriptor_ref": "artifact"}))

    def test_artifact_ref_with_unbuilt_artifact(self, project, resolver, source_for):
        params = project.model_copy(update={"artifact": "target/app.jar"})

        with pytest.raises(AssemblyResolutionError, match="does not exist"):
            resolver.resolve(source_for({"descriptor_ref": "artifact"}, params=params))

    def test_project_ref_skips_build_directory(self, project, make_file, resolver, source_for):
        make_file(project.base_dir / "pom.xml")
        make_file(project.base_dir / "src" / "main" / "App.java")
        make_file(project.base_dir / "target" / "app.jar")

        assembly = resolver.resolve(source_for({"descriptor_ref": "project"}))

        assert assembly.dests == ["pom.xml", "src/main/App.java"]

    def test_artifact_with_sources_ref(self, project, make_file, resolver, source_for):
        make_file(project.base_dir / "target" / "app.jar")
        make_file(project.base_dir / "src" / "main" / "App.java")
        params = project.model_copy(update={"artifact": "target/app.jar"})

        assembly = resolver.resolve(source_for({"descriptor_ref": "artifact-with-sources"}, params=params))

        assert assembly.dests == ["src/main/App.java", "app.jar"]

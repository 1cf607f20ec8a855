import pytest

from ctxbuilder.builder.layout import compute_dirs
from ctxbuilder.builder.manager import AssemblyManager, context_mode, needs_exec_permissions
from ctxbuilder.config import AssemblyModel, BuildImageModel
from ctxbuilder.constants import ContextMode
from ctxbuilder.datacls import Assembly
from ctxbuilder.exceptions import AssemblyResolutionError, ConfigurationError, FilesystemError


def build_config(**values) -> BuildImageModel:
    return BuildImageModel.model_validate(values)


@pytest.fixture
def manager(fs):
    return AssemblyManager(fs)


@pytest.fixture
def recipe_dir(project, make_file):
    """A user recipe directory below the project source directory"""
    directory = project.source_path / "web"
    make_file(directory / "Dockerfile", "FROM alpine\nCOPY . /app\n")
    make_file(directory / "app.jar", "jar")
    make_file(directory / "app.tmp", "tmp")
    return directory


class TestContextMode:
    def test_modes(self):
        assert context_mode(build_config(dockerfile="Dockerfile")) is ContextMode.USER_RECIPE_DIR
        assert context_mode(build_config(dockerfile_dir="web", assembly={"descriptor_ref": "artifact"})) \
            is ContextMode.USER_RECIPE_DIR
        assert context_mode(build_config(assembly={"descriptor_ref": "artifact"})) is ContextMode.GENERATED_RECIPE
        assert context_mode(build_config(assembly={"mode": "tar"})) is ContextMode.NO_ASSEMBLY
        assert context_mode(build_config()) is ContextMode.NO_ASSEMBLY

    @pytest.mark.parametrize("permissions, os_name, expected", [
        ("keep", "posix", False),
        ("keep", "nt", False),
        ("exec", "posix", True),
        ("auto", "posix", False),
        ("auto", "nt", True),
    ])
    def test_exec_permissions(self, monkeypatch, permissions, os_name, expected):
        monkeypatch.setattr("ctxbuilder.builder.manager.os.name", os_name)

        assert needs_exec_permissions(AssemblyModel(permissions=permissions)) is expected

    def test_no_assembly_keeps_permissions(self):
        assert needs_exec_permissions(None) is False


class TestGeneratedRecipe:
    def test_recipe_only_context(self, manager, project, tar_contents):
        archive = manager.create_context_archive(
            "app", project, build_config(**{"from": "scratch", "run": ["echo hi"]})
        )

        assert archive == compute_dirs("app", project).temporary_root_directory / "docker-build.tar"
        contents = tar_contents(archive)
        assert set(contents) == {"Dockerfile"}
        assert contents["Dockerfile"][1] == b"FROM scratch\nRUN echo hi\n"

    def test_assembly_in_dir_mode(self, manager, project, make_file, tar_contents):
        make_file(project.base_dir / "conf" / "app.cfg", "cfg")
        make_file(project.base_dir / "conf" / "nested" / "log.xml", "xml")
        config = build_config(**{
            "from": "alpine",
            "assembly": {
                "inline": {"file_sets": [{"directory": "conf"}]},
                "target_dir": "/opt/app",
                "user": "app",
            },
        })

        contents = tar_contents(manager.create_context_archive("app", project, config))

        assert set(contents) == {"Dockerfile", "maven/app.cfg", "maven/nested/log.xml"}
        assert contents["maven/app.cfg"][1] == b"cfg"
        assert contents["Dockerfile"][1] == b"FROM alpine\nCOPY --chown=app maven /opt/app\n"

    @pytest.mark.parametrize("mode", ["tar", "tgz", "zip"])
    def test_assembly_in_archive_modes(self, manager, project, make_file, tar_contents, mode):
        make_file(project.base_dir / "conf" / "app.cfg", "cfg")
        make_file(project.base_dir / "bin" / "run.sh", "#!/bin/sh", 0o755)
        config = build_config(**{
            "from": "alpine",
            "assembly": {
                "inline": {
                    "file_sets": [{"directory": "conf"}],
                    "files": [{"source": "bin/run.sh", "output_directory": "bin"}],
                },
                "mode": mode,
            },
        })

        archive = manager.create_context_archive("app", project, config)

        contents = tar_contents(archive)
        assert set(contents) == {"Dockerfile", "maven/app.cfg", "maven/bin/run.sh"}
        assert contents["maven/bin/run.sh"] == (0o755, b"#!/bin/sh")
        assert (compute_dirs("app", project).output_directory / f"maven.{mode}").is_file()

    def test_previous_output_is_cleaned(self, manager, project, make_file, tar_contents):
        stale = make_file(compute_dirs("app", project).output_directory / "stale.txt")

        archive = manager.create_context_archive("app", project, build_config(**{"from": "alpine"}))

        assert not stale.exists()
        assert set(tar_contents(archive)) == {"Dockerfile"}

    def test_missing_base_image(self, manager, project):
        with pytest.raises(ConfigurationError, match="No base image"):
            manager.create_context_archive("app", project, build_config())

    def test_resolution_failure_hints_at_artifact(self, manager, project):
        config = build_config(**{"from": "alpine", "assembly": {"descriptor_ref": "artifact", "mode": "zip"}})

        with pytest.raises(AssemblyResolutionError) as exc:
            manager.create_context_archive("app", project, config)

        message = str(exc.value)
        assert "Failed to create assembly for docker image (with mode 'zip')" in message
        assert "'project.artifact' points to it" in message

    def test_resolution_failure_without_hint(self, manager, project):
        params = project.model_copy(update={"artifact": "target/app.jar"})
        config = build_config(**{"from": "alpine", "assembly": {"inline": {"files": [{"source": "missing"}]}}})

        with pytest.raises(AssemblyResolutionError) as exc:
            manager.create_context_archive("app", params, config)

        assert "points to it" not in str(exc.value)


class TestRecipeDirectory:
    def test_legacy_ignore_marker(self, manager, project, recipe_dir, make_file, tar_contents):
        make_file(recipe_dir / ".maven-dockerignore", "*.tmp\n")

        archive = manager.create_context_archive("app", project, build_config(dockerfile_dir="web"))

        assert set(tar_contents(archive)) == {"Dockerfile", "app.jar"}

    def test_marker_with_invalid_utf8(self, manager, project, recipe_dir):
        (recipe_dir / ".maven-dockerignore").write_bytes(b"\xff\xfe*.tmp\n")

        with pytest.raises(FilesystemError, match=".maven-dockerignore"):
            manager.create_context_archive("app", project, build_config(dockerfile_dir="web"))

    def test_exclude_marker(self, manager, project, recipe_dir, make_file, tar_contents):
        make_file(recipe_dir / "logs" / "x.log")
        make_file(recipe_dir / ".maven-dockerexclude", "# build noise\n*.log\n*.tmp\n")

        archive = manager.create_context_archive("app", project, build_config(dockerfile_dir="web"))

        assert set(tar_contents(archive)) == {"Dockerfile", "app.jar"}

    def test_include_marker(self, manager, project, recipe_dir, make_file, tar_contents):
        make_file(recipe_dir / "src" / "main.py")
        make_file(recipe_dir / "src" / "pkg" / "util.py")
        make_file(recipe_dir / ".maven-dockerinclude", "Dockerfile\nsrc/**\n")

        archive = manager.create_context_archive("app", project, build_config(dockerfile_dir="web"))

        assert set(tar_contents(archive)) == {"Dockerfile", "src/main.py", "src/pkg/util.py"}

    def test_no_markers_takes_everything(self, manager, project, recipe_dir, tar_contents):
        archive = manager.create_context_archive("app", project, build_config(dockerfile_dir="web"))

        assert set(tar_contents(archive)) == {"Dockerfile", "app.jar", "app.tmp"}

    def test_recipe_dir_with_assembly(self, manager, project, recipe_dir, make_file, tar_contents):
        make_file(project.base_dir / "conf" / "app.cfg")
        config = build_config(dockerfile_dir="web", assembly={"inline": {"file_sets": [{"directory": "conf"}]}})

        contents = tar_contents(manager.create_context_archive("app", project, config))

        assert set(contents) == {"Dockerfile", "app.jar", "app.tmp", "maven/app.cfg"}
        assert contents["Dockerfile"][1] == b"FROM alpine\nCOPY . /app\n"

    def test_custom_dockerfile_name(self, manager, project, recipe_dir, make_file, tar_contents):
        make_file(recipe_dir / "Containerfile", "FROM busybox\n")
        config = build_config(dockerfile_dir="web", dockerfile="Containerfile")

        assert "Containerfile" in tar_contents(manager.create_context_archive("app", project, config))

    def test_missing_dockerfile(self, manager, project):
        with pytest.raises(ConfigurationError, match="Configured Dockerfile \"Dockerfile\" .* doesn't exist"):
            manager.create_context_archive("app", project, build_config(dockerfile_dir="nowhere"))


class TestPermissions:
    @pytest.fixture
    def config(self, project, make_file):
        make_file(project.base_dir / "conf" / "app.cfg", "cfg", 0o640)

        def _config(permissions):
            return build_config(**{
                "from": "alpine",
                "assembly": {"inline": {"file_sets": [{"directory": "conf"}]}, "permissions": permissions},
            })
        return _config

    def test_keep(self, manager, project, config, tar_contents):
        contents = tar_contents(manager.create_context_archive("app", project, config("keep")))

        assert contents["maven/app.cfg"][0] == 0o640

    def test_exec(self, manager, project, config, tar_contents):
        contents = tar_contents(manager.create_context_archive("app", project, config("exec")))

        assert contents["maven/app.cfg"][0] == 0o751
        assert all(mode & 0o111 == 0o111 for mode, _ in contents.values())

    def test_exec_logs_warning(self, manager, project, config, caplog):
        manager.create_context_archive("app", project, config("exec-all"))

        assert "made executable" in caplog.text


class TestDeterminism:
    @pytest.mark.parametrize("compression, suffix", [("none", "tar"), ("gzip", "tar.gz"), ("bzip2", "tar.bz2")])
    def test_repeated_builds_are_identical(self, manager, project, make_file, compression, suffix):
        make_file(project.base_dir / "conf" / "b.cfg")
        make_file(project.base_dir / "conf" / "a.cfg")
        config = build_config(**{
            "from": "alpine",
            "compression": compression,
            "assembly": {"inline": {"file_sets": [{"directory": "conf"}]}},
        })

        first = manager.create_context_archive("app", project, config)
        first_bytes = first.read_bytes()
        second = manager.create_context_archive("app", project, config)

        assert first.name == f"docker-build.{suffix}"
        assert second.read_bytes() == first_bytes


class TestResolverPasses:
    def test_build_uses_docker_pass_id(self, fs, project, make_file):
        src = make_file(project.base_dir / "a.txt")
        seen = []

        class Recording:
            def resolve(self, source):
                seen.append(source.pass_id)
                return Assembly(id=source.pass_id, entries=[(src, "a.txt")])

        manager = AssemblyManager(fs, resolver=Recording())
        config = build_config(**{"from": "alpine", "assembly": {"descriptor_ref": "anything"}})

        manager.create_context_archive("app", project, config)
        manager.get_assembly_files("app", config, project)

        assert seen == ["docker", "tracker"]

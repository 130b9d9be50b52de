import pytest

from oamtraits.uischema import (
    SCHEMA_TEMPLATE,
    generate_schemas,
    list_terraform_schema_files,
    main,
)


@pytest.fixture
def repo(tmp_path):
    addons = tmp_path / "addons"
    aws = addons / "terraform-aws" / "definitions"
    aws.mkdir(parents=True)
    (aws / "terraform-s3.yaml").write_text("x")
    (aws / "terraform-rds.yaml").write_text("x")
    (aws / "readme.md").write_text("x")
    ali = addons / "terraform-alibaba" / "definitions"
    ali.mkdir(parents=True)
    (ali / "terraform-oss.yaml").write_text("x")
    (addons / "fluxcd").mkdir()
    (addons / "terraform-notes.txt").write_text("x")
    return tmp_path


def test_lists_schema_files_in_name_order(repo):
    addons = repo / "addons"
    assert list_terraform_schema_files(repo) == [
        addons / "terraform-alibaba" / "schemas" / "component-uischema-oss.yaml",
        addons / "terraform-aws" / "schemas" / "component-uischema-rds.yaml",
        addons / "terraform-aws" / "schemas" / "component-uischema-s3.yaml",
    ]


def test_missing_definitions_directory_raises(tmp_path):
    (tmp_path / "addons" / "terraform-gcp").mkdir(parents=True)
    with pytest.raises(FileNotFoundError):
        list_terraform_schema_files(tmp_path)


def test_generate_writes_template(repo):
    written = generate_schemas(repo)
    assert len(written) == 3
    assert all(path.read_text() == SCHEMA_TEMPLATE for path in written)


def test_generate_overwrites_existing_file(repo):
    target = repo / "addons" / "terraform-aws" / "schemas" / "component-uischema-s3.yaml"
    target.parent.mkdir(parents=True)
    target.write_text("old")
    generate_schemas(repo)
    assert target.read_text() == SCHEMA_TEMPLATE


def test_main_reports_success(repo, capsys):
    assert main([str(repo)]) == 0
    assert "Successfully generated terraform schema files" in capsys.readouterr().out
    assert (repo / "addons" / "terraform-alibaba" / "schemas" / "component-uischema-oss.yaml").exists()


def test_main_fails_without_addons(tmp_path):
    assert main([str(tmp_path)]) == 1
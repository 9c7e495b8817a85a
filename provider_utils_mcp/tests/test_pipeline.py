import csv
import logging
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from provider_utils_mcp.providerdev.analyze import MANIFEST_COLUMNS, analyze, main_2xx_response_object
from provider_utils_mcp.providerdev.deref import DerefError
from provider_utils_mcp.providerdev.docs import (
    dialect_name,
    generate_docs,
    render_index,
    render_resource,
    render_view,
    sanitize_html,
)
from provider_utils_mcp.providerdev.errors import ManifestError
from provider_utils_mcp.providerdev.generate import PROVIDER_VERSION, build_resources, generate, success_response_info
from provider_utils_mcp.providerdev.model import GenerateOptions, ManifestRow, SplitOptions
from provider_utils_mcp.providerdev.partition import split

SPECS = Path(__file__).resolve().parent / "specs"
PETSTORE = SPECS / "petstore.yaml"

MANIFEST_ROWS = [
    ("pets.yaml", "listPets", "pets", "list_pets", "select"),
    ("pets.yaml", "createPet", "pets", "create_pet", "insert"),
    ("pets.yaml", "getPet", "pets", "get_pet", "select"),
    ("pets.yaml", "deletePet", "pets", "delete_pet", "delete"),
    ("store_orders.yaml", "listOrders", "orders", "list_orders", "select"),
]


def _split(tmp_path):
    out = tmp_path / "split"
    split(SplitOptions(api_doc=str(PETSTORE), provider_name="petstore", output_dir=str(out), exclude=("Internal",)))
    return out


def _write_manifest(path, rows=MANIFEST_ROWS):
    with open(path, "w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle)
        writer.writerow(["filename", "operationId", "stackql_resource_name", "stackql_method_name", "stackql_verb"])
        writer.writerows(rows)
    return path


def _read_csv(path):
    with open(path, "r", encoding="utf-8", newline="") as handle:
        return list(csv.DictReader(handle))


def _generate(tmp_path, servers=None):
    split_dir = _split(tmp_path)
    provider_dir = tmp_path / "provider" / "petstore"
    manifest_path = generate(
        GenerateOptions(
            input_dir=str(split_dir),
            output_dir=str(provider_dir),
            config_path=str(_write_manifest(tmp_path / "manifest.csv")),
            provider_id="petstore",
            servers=servers,
        )
    )
    return provider_dir / PROVIDER_VERSION, Path(manifest_path)


# --- Analyze ---


def test_analyze_writes_manifest_rows(tmp_path):
    split_dir = _split(tmp_path)
    output = analyze(str(split_dir), str(tmp_path / "analysis"))

    assert output == str(tmp_path / "analysis" / "all_services.csv")
    rows = _read_csv(output)
    assert list(rows[0]) == list(MANIFEST_COLUMNS)
    assert [(row["filename"], row["operationId"]) for row in rows] == [
        ("pets.yaml", "listPets"),
        ("pets.yaml", "createPet"),
        ("pets.yaml", "getPet"),
        ("pets.yaml", "deletePet"),
        ("store_orders.yaml", "listOrders"),
    ]
    assert rows[0] == {
        "filename": "pets.yaml",
        "path": "/v1/pets",
        "operationId": "listPets",
        "formatted_op_id": "list_pets",
        "verb": "get",
        "response_object": "Pet",
        "tags": "Pets",
        "formatted_tags": "pets",
        "stackql_resource_name": "",
        "stackql_method_name": "",
        "stackql_verb": "",
    }
    assert rows[2]["path"] == "/v1/pets/{pet_id}"
    assert rows[3]["response_object"] == ""
    assert rows[4]["formatted_tags"] == "store orders"


def test_main_2xx_response_object():
    ref = {"$ref": "#/components/schemas/Thing"}
    assert main_2xx_response_object({"404": {}, "200": {"content": {"application/json": {"schema": ref}}}}) == "Thing"
    array = {"type": "array", "items": ref}
    assert main_2xx_response_object({"201": {"content": {"application/json": {"schema": array}}}}) == "Thing"
    assert main_2xx_response_object({"200": {"content": {"text/plain": {"schema": ref}}}}) == ""
    assert main_2xx_response_object(None) == ""


# --- Generate ---


def test_generate_enriches_services_and_writes_provider(tmp_path):
    version_dir, manifest_path = _generate(tmp_path, servers='[{"url": "https://api.petstore.example.com"}]')

    assert manifest_path == version_dir / "provider.yaml"
    provider = yaml.safe_load(manifest_path.read_text(encoding="utf-8"))
    assert provider["id"] == "petstore"
    assert provider["version"] == PROVIDER_VERSION
    assert set(provider["providerServices"]) == {"pets", "store_orders"}
    assert provider["providerServices"]["pets"] == {
        "id": f"pets:{PROVIDER_VERSION}",
        "name": "pets",
        "preferred": True,
        "service": {"$ref": f"petstore/{PROVIDER_VERSION}/services/pets.yaml"},
        "title": "pets API",
        "version": PROVIDER_VERSION,
        "description": "Pet operations",
    }
    assert "config" not in provider

    pets = yaml.safe_load((version_dir / "services" / "pets.yaml").read_text(encoding="utf-8"))
    assert pets["servers"] == [{"url": "https://api.petstore.example.com"}]
    resource = pets["components"]["x-stackQL-resources"]["pets"]
    assert resource["id"] == "petstore.pets.pets"
    assert resource["title"] == "Pets"
    assert resource["methods"]["list_pets"] == {
        "operation": {"$ref": "#/paths/~1v1~1pets/get"},
        "response": {"mediaType": "application/json", "openAPIDocKey": "200"},
    }
    assert resource["methods"]["get_pet"]["operation"] == {"$ref": "#/paths/~1v1~1pets~1{pet_id}/get"}
    assert resource["methods"]["delete_pet"]["response"] == {"mediaType": "", "openAPIDocKey": "204"}
    assert resource["sqlVerbs"] == {
        "select": [
            {"$ref": "#/components/x-stackQL-resources/pets/methods/list_pets"},
            {"$ref": "#/components/x-stackQL-resources/pets/methods/get_pet"},
        ],
        "insert": [{"$ref": "#/components/x-stackQL-resources/pets/methods/create_pet"}],
        "update": [],
        "delete": [{"$ref": "#/components/x-stackQL-resources/pets/methods/delete_pet"}],
        "replace": [],
    }


def test_generate_clears_previous_output(tmp_path):
    version_dir, _ = _generate(tmp_path)
    stale = version_dir / "services" / "stale.yaml"
    stale.write_text("x: 1\n", encoding="utf-8")

    generate(
        GenerateOptions(
            input_dir=str(tmp_path / "split"),
            output_dir=str(version_dir.parent),
            config_path=str(tmp_path / "manifest.csv"),
            provider_id="petstore",
            provider_config='{"auth": {"type": "bearer"}}',
            skip_files=("store_orders.yaml",),
        )
    )
    assert sorted(p.name for p in (version_dir / "services").iterdir()) == ["pets.yaml"]
    provider = yaml.safe_load((version_dir / "provider.yaml").read_text(encoding="utf-8"))
    assert provider["config"] == {"auth": {"type": "bearer"}}
    assert list(provider["providerServices"]) == ["pets"]


def test_generate_fails_on_missing_manifest_row(tmp_path):
    split_dir = _split(tmp_path)
    manifest = _write_manifest(tmp_path / "manifest.csv", [row for row in MANIFEST_ROWS if row[1] != "getPet"])
    options = GenerateOptions(
        input_dir=str(split_dir),
        output_dir=str(tmp_path / "provider"),
        config_path=str(manifest),
        provider_id="petstore",
    )
    with pytest.raises(ManifestError, match="pets.yaml -> getPet not found in manifest"):
        generate(options)


def test_generate_rejects_bad_json_options(tmp_path):
    options = GenerateOptions(
        input_dir=str(tmp_path),
        output_dir=str(tmp_path / "provider"),
        config_path=str(tmp_path / "missing.csv"),
        provider_id="p",
        servers="not json",
    )
    with pytest.raises(ManifestError, match="servers"):
        generate(options)


def test_build_resources_exec_and_unknown_verbs(caplog):
    document = {
        "paths": {
            "/jobs/{id}/run": {"post": {"operationId": "runJob", "responses": {200: {"description": "ok"}}}},
            "/jobs": {"get": {"operationId": "listJobs", "responses": {}}},
            "/untracked": {"get": {"responses": {}}},
        }
    }
    manifest = {
        ("svc.yaml", "runJob"): ManifestRow("svc.yaml", "runJob", "jobs", "run", "exec"),
        ("svc.yaml", "listJobs"): ManifestRow("svc.yaml", "listJobs", "jobs", "list", "fetch", object_key="$.items"),
    }
    with caplog.at_level(logging.INFO):
        resources = build_resources("svc.yaml", "svc", "acme", document, manifest)

    jobs = resources["jobs"]
    assert set(jobs["methods"]) == {"run", "list"}
    assert jobs["methods"]["run"]["response"] == {"mediaType": "", "openAPIDocKey": "200"}
    assert jobs["methods"]["list"]["response"] == {"mediaType": "", "openAPIDocKey": "", "objectKey": "$.items"}
    assert all(refs == [] for refs in jobs["sqlVerbs"].values())
    assert "Unknown SQL verb 'fetch'" in caplog.text


def test_success_response_info_picks_lowest_2xx():
    operation = {
        "responses": {
            "202": {"content": {"application/xml": {}}},
            "200": {"content": {"application/json": {}, "text/plain": {}}},
            "default": {},
        }
    }
    assert success_response_info(operation) == {"mediaType": "application/json", "openAPIDocKey": "200"}
    assert success_response_info({"responses": {"400": {}}}) == {"mediaType": "", "openAPIDocKey": ""}


def test_analyze_reports_existing_mappings(tmp_path):
    version_dir, _ = _generate(tmp_path)
    rows = _read_csv(analyze(str(version_dir / "services"), str(tmp_path / "analysis")))
    mapped = {row["operationId"]: (row["stackql_resource_name"], row["stackql_method_name"], row["stackql_verb"]) for row in rows}
    assert mapped == {
        "listPets": ("pets", "list_pets", "select"),
        "createPet": ("pets", "create_pet", "insert"),
        "getPet": ("pets", "get_pet", "select"),
        "deletePet": ("pets", "delete_pet", "delete"),
        "listOrders": ("orders", "list_orders", "select"),
    }


# --- Docs ---


def test_generate_docs(tmp_path):
    version_dir, _ = _generate(tmp_path)
    summary = generate_docs(str(version_dir), str(tmp_path / "docs"), "petstore")

    docs_dir = tmp_path / "docs" / "petstore-docs"
    assert summary == {"services": 2, "resources": 2, "indexPath": str(docs_dir / "index.md")}

    page = (docs_dir / "providers" / "petstore" / "pets" / "pets" / "index.md").read_text(encoding="utf-8")
    assert "title: pets" in page
    assert "| <code>id</code> | `string` |" in page
    assert "FROM petstore.pets.pets" in page
    assert "pet_id = '{{ pet_id }}'" in page
    assert "INSERT INTO petstore.pets.pets" in page
    assert "### Example request body" in page
    assert "DELETE FROM petstore.pets.pets" in page
    assert "## Lifecycle methods" not in page
    assert (docs_dir / "providers" / "petstore" / "store_orders" / "orders" / "index.md").exists()

    index = (docs_dir / "index.md").read_text(encoding="utf-8")
    assert "total services: **2**" in index


@patch("provider_utils_mcp.providerdev.docs.dereference_service")
def test_generate_docs_full_mode_falls_back(mock_deref, tmp_path, caplog):
    mock_deref.side_effect = DerefError("boom")
    version_dir, _ = _generate(tmp_path)
    with caplog.at_level(logging.WARNING):
        summary = generate_docs(str(version_dir), str(tmp_path / "docs"), "petstore", deref_mode="full")
    assert summary["resources"] == 2
    assert mock_deref.call_count == 2
    assert "Falling back to local reference resolution" in caplog.text


def test_sanitize_html():
    assert sanitize_html("a <b> {c}\nd") == "a &lt;b&gt; &#123;c&#125;<br />d"


def test_render_index():
    text = render_index("acme", ["compute", "storage"], 5)
    assert "total resources: **5**" in text
    assert "- [storage](providers/acme/storage/)" in text


VIEW_RESOURCE = {
    "id": "acme.compute.widget_summary",
    "name": "widget_summary",
    "config": {
        "views": {
            "fields": [{"name": "id", "type": "string", "description": "Widget <id>"}],
            "requiredParams": [{"name": "project", "type": "string", "description": "Project"}],
            "select": {
                "predicate": "sqlDialect == \"sqlite3\"",
                "ddl": "SELECT id FROM acme.compute.widgets\n",
                "fallback": {"predicate": "sqlDialect == 'postgres'", "ddl": "SELECT id::text FROM acme.compute.widgets"},
            },
        }
    },
}


def test_render_view():
    text = render_view(VIEW_RESOURCE)
    assert text.startswith("## View definition\n\nThe following fields are returned by this view:")
    assert "| <code>id</code> | `string` | Widget &lt;id&gt; |" in text
    assert "### Required Parameters" in text
    assert "| <code>project</code> | `string` | Project |" in text
    assert "#### Sqlite3\n\n```sql\nSELECT id FROM acme.compute.widgets\n```" in text
    assert "#### Postgres\n\n```sql\nSELECT id::text FROM acme.compute.widgets\n```" in text
    assert text.index("Sqlite3") < text.index("Postgres")


def test_render_view_without_fields_or_views():
    resource = {"config": {"views": {"select": {"ddl": "SELECT 1"}}}}
    text = render_view(resource)
    assert "See the SQL Definition (view DDL) for fields returned by this view." in text
    assert "Required Parameters" not in text
    assert "#### Default\n\n```sql\nSELECT 1\n```" in text
    assert render_view({"methods": {}}) == ""


def test_dialect_name():
    assert dialect_name(None) == "Default"
    assert dialect_name("sqlDialect == 'sqlite3'") == "Sqlite3"
    with pytest.raises(ValueError):
        dialect_name("dialect is sqlite")


def test_render_resource_includes_view_section():
    text = render_resource("acme", "compute", "widget_summary", VIEW_RESOURCE, {"paths": {}})
    assert "| Id | <code>acme.compute.widget_summary</code> |" in text
    assert "## View definition" in text
    assert "`SELECT` not supported for this resource" in text

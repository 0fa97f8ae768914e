"""Tests for template loading and rendering."""

import pytest
import yaml

from k8sio.deploy import TemplateRenderer
from k8sio.deploy.engine import TemplateRenderError, apply_manifests, load_template_assets


class TestTemplateAssets:
    """Tests for the shared template table."""

    def test_package_templates_loaded(self):
        assets = load_template_assets()
        assert "fio/client.yaml.j2" in assets
        assert "hammerdb/job.yaml.j2" in assets

    def test_table_is_read_only(self):
        assets = load_template_assets()
        with pytest.raises(TypeError):
            assets["fio/client.yaml.j2"] = ""  # type: ignore[index]

    def test_loaded_once(self):
        assert load_template_assets() is load_template_assets()

    def test_custom_directory(self, tmp_path):
        (tmp_path / "nested").mkdir()
        (tmp_path / "nested" / "cm.yaml.j2").write_text("kind: ConfigMap\n")
        (tmp_path / "notes.txt").write_text("ignored")

        assets = load_template_assets(tmp_path)

        assert dict(assets) == {"nested/cm.yaml.j2": "kind: ConfigMap\n"}


class TestTemplateRenderer:
    """Tests for TemplateRenderer."""

    def test_unknown_template(self):
        with pytest.raises(TemplateRenderError, match="Unknown template"):
            TemplateRenderer().render("fio/missing.yaml.j2", {})

    def test_missing_variable_is_an_error(self):
        renderer = TemplateRenderer({"t.j2": "name: {{ name }}\n"})
        with pytest.raises(TemplateRenderError, match="Failed to render t.j2"):
            renderer.render("t.j2", {})

    def test_render_manifests_skips_empty_documents(self):
        renderer = TemplateRenderer({"t.j2": "---\nkind: A\n---\n---\nkind: B\n"})
        assert renderer.render_manifests("t.j2", {}) == [{"kind": "A"}, {"kind": "B"}]

    def test_invalid_yaml(self):
        renderer = TemplateRenderer({"t.j2": "a: [1\n"})
        with pytest.raises(TemplateRenderError, match="invalid YAML"):
            renderer.render_manifests("t.j2", {})

    def test_to_yaml_filter_indents(self):
        renderer = TemplateRenderer({"t.j2": "labels:\n{{ labels | to_yaml(2) }}\n"})

        text = renderer.render("t.j2", {"labels": {"app": "fio", "role": "server"}})

        assert text == "labels:\n  app: fio\n  role: server\n"
        assert yaml.safe_load(text) == {"labels": {"app": "fio", "role": "server"}}

    def test_include_resolves_from_table(self):
        renderer = TemplateRenderer({"a.j2": "x={% include 'b.j2' %}", "b.j2": "{{ v }}"})
        assert renderer.render("a.j2", {"v": 1}) == "x=1"


class TestApplyManifests:
    """Tests for apply_manifests."""

    def test_applies_in_order(self, mock_k8s_client):
        docs = [
            {"kind": "ConfigMap", "metadata": {"name": "a"}},
            {"kind": "Pod", "metadata": {"name": "b"}},
        ]

        applied = apply_manifests(mock_k8s_client, docs, "bench")

        assert applied == ["ConfigMap/a", "Pod/b"]
        assert mock_k8s_client.apply_manifest.call_args.kwargs["namespace"] == "bench"

    def test_stops_at_first_failure(self, mock_k8s_client):
        mock_k8s_client.apply_manifest.side_effect = [True, RuntimeError("boom"), True]
        docs = [{"kind": "ConfigMap", "metadata": {"name": n}} for n in "abc"]

        with pytest.raises(RuntimeError):
            apply_manifests(mock_k8s_client, docs, "bench")

        assert mock_k8s_client.apply_manifest.call_count == 2

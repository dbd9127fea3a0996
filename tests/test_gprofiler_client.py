from unittest.mock import Mock, patch

import pytest
import requests

from deg_ora.config import GostConfig
from deg_ora.errors import GProfilerError
from deg_ora.gprofiler_client import GProfilerClient, attach_intersections, build_payload


def _response(status_code=200, body=None, json_error=False):
    resp = Mock()
    resp.status_code = status_code
    resp.ok = 200 <= status_code < 300
    if json_error:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = body
    return resp


def test_payload_with_background_uses_custom_domain():
    payload = build_payload(["TP53", "MDM2"], GostConfig(), background=["TP53", "MDM2", "BAX"])

    assert payload["domain_scope"] == "custom"
    assert payload["background"] == ["TP53", "MDM2", "BAX"]
    assert payload["significance_threshold_method"] == "g_SCS"
    assert payload["sources"] == ["GO:BP", "GO:MF", "GO:CC", "KEGG", "REAC", "WP"]
    assert payload["no_evidences"] is False
    assert payload["user_threshold"] == 0.05


def test_payload_without_background_uses_annotated_domain():
    payload = build_payload(["TP53"], GostConfig(organism="mmusculus"))

    assert payload["domain_scope"] == "annotated"
    assert "background" not in payload
    assert payload["organism"] == "mmusculus"


def test_given_background_always_sets_custom_domain():
    payload = build_payload(["TP53"], GostConfig(), background=[])

    assert payload["domain_scope"] == "custom"
    assert payload["background"] == []


def test_profile_posts_once_and_parses(gost_body):
    client = GProfilerClient(GostConfig(timeout=30))
    with patch("deg_ora.gprofiler_client.requests.post", return_value=_response(body=gost_body)) as post:
        response = client.profile(["TP53", "MDM2", "BBC3"], background=["TP53", "MDM2", "BBC3", "BAX"])

    post.assert_called_once()
    args, kwargs = post.call_args
    assert args[0] == "https://biit.cs.ut.ee/gprofiler/api/gost/profile/"
    assert kwargs["json"]["query"] == ["TP53", "MDM2", "BBC3"]
    assert kwargs["timeout"] == 30
    assert len(response.terms) == 2
    assert response.failed == ["LINC9999"]
    assert response.ambiguous == []
    assert response.version == "e111_eg58_p18_f463989d"


def test_profile_maps_intersections_to_input_genes(gost_body):
    client = GProfilerClient()
    with patch("deg_ora.gprofiler_client.requests.post", return_value=_response(body=gost_body)):
        response = client.profile(["TP53", "MDM2", "BBC3"])

    apoptosis = next(t for t in response.terms if t["native"] == "GO:0006915")
    assert apoptosis["intersection_genes"] == ["TP53", "BBC3"]
    assert apoptosis["evidence_codes"] == [["IDA"], ["IMP", "IEA"]]


def test_profile_skips_intersections_without_evidences(gost_body):
    client = GProfilerClient(GostConfig(no_evidences=True))
    with patch("deg_ora.gprofiler_client.requests.post", return_value=_response(body=gost_body)):
        response = client.profile(["TP53"])

    assert "intersection_genes" not in response.terms[0]


def test_custom_base_url():
    client = GProfilerClient(GostConfig(base_url="https://biit.cs.ut.ee/gprofiler_archive3/e108_eg55_p17/"))

    assert client.url == "https://biit.cs.ut.ee/gprofiler_archive3/e108_eg55_p17/api/gost/profile/"


def test_empty_query_is_rejected_without_request():
    with patch("deg_ora.gprofiler_client.requests.post") as post:
        with pytest.raises(ValueError, match="empty"):
            GProfilerClient().profile([])
    post.assert_not_called()


def test_http_error_carries_server_message():
    resp = _response(status_code=400, body={"message": "Organism 'xx' not found"})
    with patch("deg_ora.gprofiler_client.requests.post", return_value=resp):
        with pytest.raises(GProfilerError, match="HTTP 400: Organism 'xx' not found") as err:
            GProfilerClient().profile(["TP53"])
    assert err.value.status_code == 400


def test_http_error_without_json_body():
    with patch("deg_ora.gprofiler_client.requests.post", return_value=_response(502, json_error=True)):
        with pytest.raises(GProfilerError, match="HTTP 502$"):
            GProfilerClient().profile(["TP53"])


def test_connection_error():
    with patch(
        "deg_ora.gprofiler_client.requests.post", side_effect=requests.ConnectionError("refused")
    ):
        with pytest.raises(GProfilerError, match="request failed: refused"):
            GProfilerClient().profile(["TP53"])


def test_non_json_success_body():
    with patch("deg_ora.gprofiler_client.requests.post", return_value=_response(json_error=True)):
        with pytest.raises(GProfilerError, match="non-JSON"):
            GProfilerClient().profile(["TP53"])


def test_ambiguous_genes_from_mapping():
    client = GProfilerClient()
    body = {"result": [], "meta": {"genes_metadata": {"ambiguous": {"MT-ND1": ["E1", "E2"]}}}}
    with patch("deg_ora.gprofiler_client.requests.post", return_value=_response(body=body)):
        response = client.profile(["MT-ND1"])

    assert response.terms == []
    assert response.ambiguous == ["MT-ND1"]


def test_attach_intersections_with_one_to_many_mapping():
    terms = [{"query": "query_1", "intersections": [["IEA"], ["TAS"]]}]
    metadata = {
        "query": {
            "query_1": {
                "ensgs": ["ENSG1", "ENSG2"],
                "mapping": {"GENE_A": ["ENSG1"], "ALIAS_A": ["ENSG1"], "GENE_B": ["ENSG2"]},
            }
        }
    }

    attach_intersections(terms, metadata)

    assert terms[0]["intersection_genes"] == ["GENE_A", "ALIAS_A", "GENE_B"]
    assert terms[0]["evidence_codes"] == [["IEA"], ["IEA"], ["TAS"]]

"""
Name: Responsables Builder Tests

Responsibilities:
  - Validate id/name/position/management extraction from loose user records
  - Validate responsibility ids per role
  - Validate that a user may appear in several lists
"""

import pytest

from gsign.domain.entities import ResponsabilidadRole
from gsign.domain.responsables import build_responsables, full_name, to_responsable

pytestmark = pytest.mark.unit


def test_to_responsable_extracts_all_fields():
    user = {
        "usuarioId": "15",
        "primer_nombre": "María",
        "segundo_name": " José ",
        "primer_apellido": "López",
        "posicion": {"nombre": "Analista"},
        "gerenciaNombre": "Calidad",
    }

    responsable = to_responsable(user, ResponsabilidadRole.REVISA)

    assert responsable.user_id == 15
    assert responsable.nombre == "María José López"
    assert responsable.puesto == "Analista"
    assert responsable.gerencia == "Calidad"
    assert responsable.responsabilidad_id == 1


def test_full_name_falls_back_to_nombre():
    assert full_name({"nombre": " Equipo Legal "}) == "Equipo Legal"
    assert full_name({}) == ""


@pytest.mark.parametrize("user", [{}, {"id": "abc"}, {"nombre": "Sin id"}, {"id": 1.5}])
def test_to_responsable_without_numeric_id_raises(user):
    with pytest.raises(ValueError, match="identificador válido"):
        to_responsable(user, ResponsabilidadRole.APRUEBA)


def test_build_responsables_keeps_duplicates_across_lists():
    ana = {"id": 1, "nombre": "Ana"}
    beto = {"id": 2, "nombre": "Beto"}

    payload = build_responsables(elabora=ana, revisa=[ana, beto], aprueba=[ana], enterado=[])

    assert payload.elabora.responsabilidad_id == 4
    assert [r.user_id for r in payload.revisa] == [1, 2]
    assert [r.responsabilidad_id for r in payload.aprueba] == [2]
    assert payload.enterado == ()


def test_to_dict_uses_backend_keys_and_omits_missing_elabora():
    payload = build_responsables(enterado=[{"id": 3, "nombre": "Caro"}])

    data = payload.to_dict()

    assert "elabora" not in data
    assert data["enterado"] == [
        {
            "userId": 3,
            "nombre": "Caro",
            "puesto": "",
            "gerencia": "",
            "responsabilidadId": 3,
        }
    ]

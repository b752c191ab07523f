"""
Static demo road network around Dublin city centre.

Segments are directed (travelled start -> end) and list the segments they
connect to; the graph makes the adjacency symmetric when it is built.
"""
from __future__ import annotations

from typing import Dict, Sequence

# Junctions, (lat, lng).
_OCONNELL_SOUTH = (53.3472, -6.2603)
_OCONNELL_1 = (53.3498, -6.2603)
_OCONNELL_2 = (53.3510, -6.2603)
_OCONNELL_3 = (53.3522, -6.2603)
_PARNELL_SQUARE = (53.3534, -6.2603)
_N1_DRUMCONDRA = (53.3598, -6.2503)
_N1_WHITEHALL = (53.3898, -6.2403)
_N2_PHIBSBOROUGH = (53.3598, -6.2703)
_N2_FINGLAS = (53.3898, -6.2803)
_QUAYS_WEST = (53.3472, -6.2693)
_QUAYS_1 = (53.3472, -6.2663)
_QUAYS_2 = (53.3472, -6.2633)
_QUAYS_EAST = (53.3472, -6.2573)
_DAME_WEST = (53.3439, -6.2674)
_DAME_1 = (53.3439, -6.2644)
_DAME_2 = (53.3439, -6.2614)
_DAME_EAST = (53.3439, -6.2584)
_GRAFTON_SOUTH = (53.3415, -6.2600)
_GRAFTON_1 = (53.3425, -6.2600)
_GRAFTON_2 = (53.3435, -6.2600)
_GRAFTON_NORTH = (53.3445, -6.2600)
_GARDINER_NORTH = (53.3534, -6.2560)

SEGMENT_DEFINITIONS: Sequence[Dict[str, object]] = [
    {"id": 1, "start": _OCONNELL_SOUTH, "end": _OCONNELL_1, "road_name": "O'Connell Street", "road_class": "avenue", "connected": [2]},
    {"id": 2, "start": _OCONNELL_1, "end": _OCONNELL_2, "road_name": "O'Connell Street", "road_class": "avenue", "connected": [3]},
    {"id": 3, "start": _OCONNELL_2, "end": _OCONNELL_3, "road_name": "O'Connell Street", "road_class": "avenue", "connected": [4]},
    {"id": 4, "start": _OCONNELL_3, "end": _PARNELL_SQUARE, "road_name": "O'Connell Street", "road_class": "avenue", "connected": [5, 7]},
    {"id": 5, "start": _PARNELL_SQUARE, "end": _N1_DRUMCONDRA, "road_name": "N1", "road_class": "freeway", "connected": [6]},
    {"id": 6, "start": _N1_DRUMCONDRA, "end": _N1_WHITEHALL, "road_name": "N1", "road_class": "freeway", "connected": [22]},
    {"id": 7, "start": _PARNELL_SQUARE, "end": _N2_PHIBSBOROUGH, "road_name": "N2", "road_class": "freeway", "connected": [8]},
    {"id": 8, "start": _N2_PHIBSBOROUGH, "end": _N2_FINGLAS, "road_name": "N2", "road_class": "freeway", "connected": [23]},
    {"id": 9, "start": _QUAYS_WEST, "end": _QUAYS_1, "road_name": "North Quays", "road_class": "boulevard", "connected": [10]},
    {"id": 10, "start": _QUAYS_1, "end": _QUAYS_2, "road_name": "North Quays", "road_class": "boulevard", "connected": [11]},
    {"id": 11, "start": _QUAYS_2, "end": _OCONNELL_SOUTH, "road_name": "North Quays", "road_class": "boulevard", "connected": [1, 12]},
    {"id": 12, "start": _OCONNELL_SOUTH, "end": _QUAYS_EAST, "road_name": "North Quays", "road_class": "boulevard", "connected": [17]},
    {"id": 13, "start": _DAME_WEST, "end": _DAME_1, "road_name": "Dame Street", "road_class": "street", "connected": [14]},
    {"id": 14, "start": _DAME_1, "end": _DAME_2, "road_name": "Dame Street", "road_class": "street", "connected": [15]},
    {"id": 15, "start": _DAME_2, "end": _DAME_EAST, "road_name": "Dame Street", "road_class": "street", "connected": [16]},
    {"id": 16, "start": _DAME_EAST, "end": _QUAYS_EAST, "road_name": "Westmoreland Street", "road_class": "street", "connected": [17]},
    {"id": 17, "start": _QUAYS_EAST, "end": _GARDINER_NORTH, "road_name": "Gardiner Street", "road_class": "street", "connected": [25]},
    {"id": 18, "start": _GRAFTON_SOUTH, "end": _GRAFTON_1, "road_name": "Grafton Street", "road_class": "street", "connected": [19]},
    {"id": 19, "start": _GRAFTON_1, "end": _GRAFTON_2, "road_name": "Grafton Street", "road_class": "street", "connected": [20]},
    {"id": 20, "start": _GRAFTON_2, "end": _GRAFTON_NORTH, "road_name": "Grafton Street", "road_class": "street", "connected": [21]},
    {"id": 21, "start": _GRAFTON_NORTH, "end": _OCONNELL_SOUTH, "road_name": "College Green", "road_class": "street", "connected": [1, 12]},
    {"id": 22, "start": _N1_WHITEHALL, "end": _N2_FINGLAS, "road_name": "Collins Avenue", "road_class": "avenue", "connected": [23]},
    {"id": 23, "start": _N2_FINGLAS, "end": _N2_PHIBSBOROUGH, "road_name": "N2", "road_class": "freeway", "connected": [24]},
    {"id": 24, "start": _N2_PHIBSBOROUGH, "end": _QUAYS_WEST, "road_name": "Church Street", "road_class": "street", "connected": [9]},
    {"id": 25, "start": _GARDINER_NORTH, "end": _PARNELL_SQUARE, "road_name": "Parnell Street", "road_class": "street", "connected": [5, 7]},
]

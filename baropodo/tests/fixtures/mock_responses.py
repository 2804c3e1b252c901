"""Canned oracle replies for the two analysis calls.

The extraction payload is internally consistent: statuses match their printed ranges,
load splits sum to 100 and the comparison block matches the stage values, so a clean
run through normalization produces no notes.
"""

import json

from baropodo.analysis.constants import JSON_END, JSON_START


def _metric(value, vn_range, vn_status):
    return {"value": value, "vn_range": vn_range, "vn_status": vn_status}


def _stage(area, length, velocity, angle, left_load, right_load, lfs_status="within"):
    return {
        "page1": {
            "cop_mean_x_mm": -2.1,
            "cop_mean_y_mm": -14.6,
            "cop_x_vn_range": "-5 ± 10",
            "cop_y_vn_range": "-20 ± 15",
            "cop_x_vn_status": "within",
            "cop_y_vn_status": "within",
            "page6_left_load_pct": left_load,
            "page6_right_load_pct": right_load,
            "quadrant_loads_pct": [24, 26, 25, 25],
            "left_mean_pressure": 410,
            "right_mean_pressure": 398,
            "global_metrics": {
                "length_mm": _metric(length, "< 1000", "within" if length < 1000 else "above"),
                "area_mm2": _metric(area, "< 200", "within" if area < 200 else "above"),
                "velocity_mm_s": _metric(velocity, "< 20", "within" if velocity < 20 else "above"),
                "lfs": _metric(1.02, "0.7 - 1.3", lfs_status),
            },
        },
        "page2": {
            "left": {"length_mm": 420, "area_mm2": 95, "velocity_mm_s": 8.1, "load_pct": left_load},
            "right": {"length_mm": 455, "area_mm2": 110, "velocity_mm_s": 8.9, "load_pct": right_load},
            "foot_stabilograms": {"less_stable_foot": "right"},
        },
        "page3": {"ellipse_angle_deg": angle, "ellipse_major_axis_mm": 14.2, "ellipse_minor_axis_mm": 6.3},
        "page4_fft": {
            "ml_spectrum": {
                "dominant_band": "0.0-0.1 Hz",
                "top_peak_hz_est": "≈0.08",
                "high_freq_present_gt_0_5": False,
                "description": "Low-frequency dominated",
            },
            "ap_spectrum": {
                "dominant_band": "0.0-0.1 Hz",
                "top_peak_hz_est": "≈0.05",
                "high_freq_present_gt_0_5": False,
                "description": "Low-frequency dominated",
            },
            "cross_spectrum": None,
            "force_z": None,
        },
        "page5_sdc": {"mean_peak_s": 1.8, "mean_distance_mm": 3.4, "peak_count": 21, "mean_time_s": 2.4},
        "page6": {"left_load_pct": left_load, "right_load_pct": right_load, "forefoot_pct": 44, "rearfoot_pct": 56},
        "page8_dashboard": {
            "postural_index_arrow_value": 62,
            "postural_index_zone": "yellow",
            "radar_expanded_axes": ["Area", "Velocity"],
            "radar_contracted_axes": ["LFS"],
        },
    }


EXTRACTION_PAYLOAD = {
    "patient": {
        "name": "Test Patient",
        "date_time": "2026-03-02 10:15",
        "age": 41,
        "sex": "F",
        "height_cm": 168,
        "weight_kg": 61,
        "shoe_size": 39,
    },
    "tests": {
        "A": _stage(area=100, length=640, velocity=10.7, angle=10.0, left_load=49, right_load=51),
        "B": _stage(area=150, length=880, velocity=14.7, angle=-5.0, left_load=48, right_load=52),
        "C": _stage(area=120, length=760, velocity=12.7, angle=-2.0, left_load=50, right_load=50),
    },
    "comparisons": {
        "romberg_b_over_a": {
            "area_mm2": {"ratio": 1.5, "pct_change": "+50.0%"},
            "ellipse_angle_deg": {"delta_deg": -15.0, "sign_flip": True},
        },
        "cotton_c_over_b": {
            "area_mm2": {"ratio": 0.8, "pct_change": "-20.0%"},
        },
        "sensory_ranking": {"primary": "visual", "secondary": "stomatognathic", "minor": "vestibular"},
    },
}

EXTRACTION_DIAGNOSTICS = (
    "Diagnostics: all three reports were readable. Pages 1-6 and 8 present for every stage. "
    "Page 4 cross spectrum and force spectrum not printed."
)

EXTRACTION_RESPONSE = (
    f"{EXTRACTION_DIAGNOSTICS}\n\n{JSON_START}\n{json.dumps(EXTRACTION_PAYLOAD, indent=2)}\n{JSON_END}\n"
)

INTERPRETATION_MARKDOWN = """## Evidence
- Romberg area ratio 1.5 (+50.0%): sway area grows markedly with eyes closed.
- Cotton area ratio 0.8 (-20.0%): occlusal modulation reduces sway.
- All global metrics within their printed norms in stage A.

## Knowledge base
KB support: none found

## Sensory ranking
PRIMARY: visual → SECONDARY: stomatognathic → MINOR: vestibular
Visual input removal produces the largest change; cotton rolls partially compensate.

## Diagnosis
Visually dependent postural control with a stomatognathic contribution.

## Caveats
Decision support only; the cross spectrum was not printed.
"""

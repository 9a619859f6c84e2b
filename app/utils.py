"""
KBPC UI helpers (Streamlit)
Styling, KPI cards and belt badges shared by the pages in main.py.
"""

import html

import pandas as pd
import streamlit as st


# ---------------------------------------------------------
# 1. UI Helpers
# ---------------------------------------------------------
def apply_custom_css():
    st.markdown("""
        <style>
        header {visibility: hidden;}
        #MainMenu {visibility: hidden;}
        footer {visibility: hidden;}
        .block-container {padding-top: 1.5rem !important; padding-bottom: 2rem !important;}
        .kpi-card {
            background-color: white; padding: 20px; border-radius: 12px;
            box-shadow: 0 4px 6px rgba(0,0,0,0.05); border-left: 5px solid #4f46e5;
            text-align: center;
        }
        .kpi-title {font-size: 14px; color: #64748b; margin-bottom: 5px; font-weight: 600;}
        .kpi-value {font-size: 28px; font-weight: bold; color: #1e293b;}
        .kpi-icon {font-size: 24px; margin-bottom: 10px;}
        .belt-badge {display: inline-block; padding: 2px 10px; border-radius: 999px;
                     border: 2px solid; font-size: 12px; font-weight: 700;}
        [data-testid="stSidebar"] {border-right: 1px solid #E0E0E0;}
        div.stButton > button {border-radius: 6px;}
        </style>
    """, unsafe_allow_html=True)


def ui_header(text):
    st.markdown(
        f"<div style='color:#64748b; font-size:18px; font-weight:700; margin:5px 0 8px 0;'>{html.escape(text)}</div>",
        unsafe_allow_html=True,
    )


def metric_card(icon, title, value, col_obj):
    with col_obj:
        st.markdown(f"""
            <div class="kpi-card">
                <div class="kpi-icon">{icon}</div>
                <div class="kpi-title">{html.escape(str(title))}</div>
                <div class="kpi-value">{value}</div>
            </div>
        """, unsafe_allow_html=True)


def sidebar_logo():
    st.sidebar.markdown("""
        <div style="text-align: center; margin-bottom: 30px; margin-top: 10px;">
            <div style="background: linear-gradient(135deg, #4f46e5 0%, #312e81 100%);
                color: white; padding: 15px; border-radius: 8px; box-shadow: 0 4px 6px rgba(0,0,0,0.2);">
                <div style="font-size: 22px; font-weight: 800; letter-spacing: 1px;">🥋 KBPC</div>
                <div style="font-size: 11px; font-weight: 400; opacity: 0.9; margin-top: 5px;">Sistem Keanggotaan Bogor</div>
            </div>
        </div>
    """, unsafe_allow_html=True)


# ---------------------------------------------------------
# 2. Belt badges
# ---------------------------------------------------------
def belt_style(belt_name, belts):
    """Border / background / text colors for a belt; unknown belts get a neutral grey."""
    belt = next((b for b in belts if b.get("name") == belt_name), None)
    if not belt:
        return {"border": "#e2e8f0", "background": "#f8fafc", "color": "#64748b", "predicate": "-"}
    hexcolor = (belt.get("color") or "#cbd5e1").lstrip("#")
    try:
        r, g, b = (int(hexcolor[i:i + 2], 16) for i in (0, 2, 4))
    except ValueError:
        r = g = b = 203
    luminance = (0.299 * r + 0.587 * g + 0.114 * b) / 255
    return {
        "border": belt["color"],
        "background": belt["color"] + "20",
        "color": "#1e293b" if luminance > 0.5 else belt["color"],
        "predicate": belt.get("predicate") or "-",
    }


def belt_badge(belt_name, belts) -> str:
    s = belt_style(belt_name, belts)
    return (
        f"<span class='belt-badge' style='border-color:{s['border']}; background:{s['background']}; "
        f"color:{s['color']};'>{html.escape(belt_name or '-')}</span>"
    )


def members_table(members) -> pd.DataFrame:
    """Compact member listing for st.dataframe"""
    return pd.DataFrame([
        {
            "NIA": m.get("id"),
            "Nama": m.get("name"),
            "Role": m.get("role"),
            "Jabatan": m.get("position"),
            "Sabuk": m.get("beltLevel"),
            "Predikat": m.get("predicate"),
            "Cabang": m.get("branch"),
            "Ranting": m.get("subBranch"),
            "Status": m.get("status"),
        }
        for m in members
    ])

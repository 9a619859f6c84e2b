import hashlib
import time
from datetime import datetime

import pandas as pd
import streamlit as st

# [Module imports] project files
import app_config
import backup
import branches
import cascade
import catalogs
import database
import insights
import members
import seeds
import smart_import
import utils

# ---------------------------------------------------------
# 1. App setup
# ---------------------------------------------------------
st.set_page_config(
    page_title="KBPC Bogor - Keanggotaan",
    page_icon="🥋",
    layout="wide",
    initial_sidebar_state="expanded"
)

# menu label -> permission action
MENU = [
    ("Dashboard", "dashboard"),
    ("Anggota", "members"),
    ("Impor / Ekspor", "export"),
    ("Struktur Cabang", "branches"),
    ("Jabatan", "positions"),
    ("Tingkat Sabuk", "belt_levels"),
    ("Profil Saya", "profile"),
    ("Data & Cadangan", "backup"),
]

IMPORT_FAIL_MSG = "Gagal impor Excel. Periksa format file dan nama kolom."


def _bootstrap():
    """Once per session: logging and first-run defaults."""
    if st.session_state.get("_kbpc_ready"):
        return
    app_config.configure_logging()
    seeds.initialize()
    st.session_state["_kbpc_ready"] = True


def _notify(ok, msg):
    (st.success if ok else st.error)(msg)


def _current_user():
    uid = st.session_state.get("user_id")
    return members.get_member(uid) if uid else None


# ---------------------------------------------------------
# 2. Login / register
# ---------------------------------------------------------
def page_login():
    st.markdown("## 🥋 KBPC Bogor")
    tab_login, tab_register = st.tabs(["Masuk", "Daftar"])

    with tab_login:
        with st.form("login_form"):
            username = st.text_input("Username atau NIA")
            password = st.text_input("Kata sandi", type="password")
            submitted = st.form_submit_button("Masuk", type="primary")
        if submitted:
            ok, msg, user = members.authenticate(username, password)
            if ok:
                st.session_state["user_id"] = user["id"]
                st.toast(msg)
                st.rerun()
            elif "verifikasi" in msg:
                st.info(msg)
            else:
                st.error(msg)

    with tab_register:
        with st.form("register_form"):
            name = st.text_input("Nama lengkap")
            username = st.text_input("Username")
            email = st.text_input("Email")
            submitted = st.form_submit_button("Daftar")
        if submitted:
            _notify(*members.register_member(name, username, email))


# ---------------------------------------------------------
# 3. Pages
# ---------------------------------------------------------
def page_dashboard(user):
    st.markdown("### 📊 Dashboard")
    all_members = members.list_members()
    belts = catalogs.list_belt_levels()
    stats = members.member_stats(all_members, belts)

    c1, c2, c3, c4 = st.columns(4)
    utils.metric_card("👥", "Total Anggota", stats["total"], c1)
    utils.metric_card("👑", "Administrator", stats["admins"], c2)
    utils.metric_card("💼", "Pengurus Cabang", stats["pengurus"], c3)
    utils.metric_card("✅", "Anggota Aktif", stats["active"], c4)

    st.markdown("---")
    left, right = st.columns([3, 2])
    with left:
        utils.ui_header("Distribusi Tingkat Sabuk")
        dist = pd.DataFrame(stats["belt_distribution"])
        if not dist.empty:
            st.bar_chart(dist.set_index("name")["count"])
    with right:
        utils.ui_header("Analisis AI")
        if st.button("✨ Buat ringkasan"):
            with st.spinner("Menghubungi asisten AI..."):
                st.session_state["ai_summary"] = insights.get_member_analytics(all_members)
        if st.session_state.get("ai_summary"):
            st.markdown(st.session_state["ai_summary"])

    points = branches.mappable_sub_branches(branches.list_branches(), all_members)
    if points:
        utils.ui_header("Peta Ranting")
        df_map = pd.DataFrame(points)
        st.map(df_map[["latitude", "longitude"]])
        st.dataframe(
            df_map[["branchName", "name", "leader", "memberCount"]].rename(columns={
                "branchName": "Cabang", "name": "Ranting", "leader": "PIC", "memberCount": "Anggota"}),
            use_container_width=True, hide_index=True,
        )


def _member_form(key, defaults, user):
    """Shared add / edit form. Returns the submitted field dict or None."""
    positions = catalogs.list_positions()
    belts = catalogs.list_belt_levels()
    branch_list = branches.list_branches()
    branch_names = [b["name"] for b in branch_list]

    def _idx(options, value):
        return options.index(value) if value in options else 0

    with st.form(key):
        c1, c2 = st.columns(2)
        nia = c1.text_input("NIA", value=defaults.get("id", ""), help="Kosongkan untuk dibuat otomatis")
        name = c2.text_input("Nama", value=defaults.get("name", ""))
        username = c1.text_input("Username", value=defaults.get("username", ""))
        email = c2.text_input("Email", value=defaults.get("email", ""))
        position = c1.selectbox("Jabatan", positions or [""], index=_idx(positions, defaults.get("position")))
        belt_names = [b["name"] for b in belts]
        belt = c2.selectbox("Tingkat Sabuk", belt_names or [""], index=_idx(belt_names, defaults.get("beltLevel")))
        branch = c1.selectbox("Cabang", branch_names or [""], index=_idx(branch_names, defaults.get("branch")))
        chosen = branches.find_branch_by_name(branch, branch_list)
        sub_names = [""] + [sb["name"] for sb in (chosen or {}).get("subBranches", [])]
        sub = c2.selectbox("Ranting", sub_names, index=_idx(sub_names, defaults.get("subBranch")))
        kecamatan = c1.text_input("Kecamatan", value=defaults.get("kecamatan", ""))
        gender = c2.selectbox("Jenis Kelamin", members.GENDERS, index=_idx(members.GENDERS, defaults.get("gender")))
        roles = members.ROLES if user.get("role") == "ADMIN" else ["ANGGOTA"]
        role = c1.selectbox("Role", roles, index=_idx(roles, defaults.get("role", "ANGGOTA")))
        status = c2.selectbox("Status", members.STATUSES, index=_idx(members.STATUSES, defaults.get("status")))
        is_coach = st.checkbox("Pelatih", value=bool(defaults.get("isCoach")))
        submitted = st.form_submit_button("💾 Simpan", type="primary")

    if not submitted:
        return None
    belt_obj = catalogs.find_belt_level(belt, belts)
    return {
        "id": nia.strip(), "name": name, "username": username, "email": email,
        "position": position, "beltLevel": belt, "predicate": belt_obj["predicate"] if belt_obj else "-",
        "branch": branch, "subBranch": sub, "kecamatan": kecamatan, "gender": gender,
        "role": role, "status": status, "isCoach": is_coach,
    }


def page_members(user):
    st.markdown("### 👥 Manajemen Anggota")
    all_members = members.list_members()
    belts = catalogs.list_belt_levels()

    term = st.text_input("🔎 Cari", placeholder="Nama, username, jabatan, sabuk, cabang...")
    found = members.search_members(all_members, term)
    st.caption(f"{len(found)} dari {len(all_members)} anggota")
    st.dataframe(utils.members_table(found), use_container_width=True, hide_index=True)

    tab_add, tab_edit = st.tabs(["➕ Tambah", "✏️ Ubah / Hapus"])
    with tab_add:
        data = _member_form("add_member", {}, user)
        if data is not None:
            if not data["name"].strip():
                st.error("Nama wajib diisi.")
            else:
                ok, msg, _ = members.create_member({k: v for k, v in data.items() if k != "id" or v})
                _notify(ok, msg)

    with tab_edit:
        if not found:
            st.info("Tidak ada anggota.")
            return
        options = {f"{m['id']} - {m.get('name', '')}": m for m in found}
        picked = options[st.selectbox("Pilih anggota", list(options))]
        st.markdown(utils.belt_badge(picked.get("beltLevel"), belts), unsafe_allow_html=True)
        data = _member_form(f"edit_{picked['id']}", picked, user)
        if data is not None:
            if not data["id"]:
                data["id"] = picked["id"]
            _notify(*members.upsert_member(data, previous_id=picked["id"]))

        if members.is_allowed(user.get("role"), "delete_member"):
            if st.button("🗑️ Hapus anggota", key=f"del_{picked['id']}"):
                _notify(*members.delete_member(picked["id"]))
                st.rerun()


def page_import_export(user):
    st.markdown("### 📂 Impor / Ekspor")
    stamp = datetime.now().strftime("%Y-%m-%d")

    c1, c2 = st.columns(2)
    c1.download_button(
        "⬇️ Ekspor anggota (Excel)",
        smart_import.to_excel_bytes(smart_import.export_members_df(members.list_members()), "Anggota"),
        file_name=f"data_anggota_kbpc_{stamp}.xlsx",
    )
    c2.download_button(
        "⬇️ Ekspor struktur cabang (Excel)",
        smart_import.to_excel_bytes(smart_import.export_branches_df(branches.list_branches()), "Cabang"),
        file_name=f"struktur_cabang_kbpc_{stamp}.xlsx",
    )

    if not members.is_allowed(user.get("role"), "import"):
        return

    st.markdown("---")
    st.info(
        "📌 **Sebelum mengunggah**\n"
        "1. Anggota: kolom " + ", ".join(smart_import.MEMBER_COLUMNS) + "\n"
        "2. Cabang: kolom " + ", ".join(smart_import.BRANCH_COLUMNS) + "\n"
        "3. Alur aman: analisis → periksa → simpan."
    )
    kind = st.radio("Jenis data", ["Anggota", "Struktur Cabang"], horizontal=True)
    up = st.file_uploader("📎 Unggah Excel/CSV", type=["xlsx", "csv"])
    if up is None:
        return

    file_bytes = up.getvalue()
    file_hash = hashlib.sha256(file_bytes).hexdigest()
    # new file -> drop the previous analysis
    if st.session_state.get("import_file_hash") != file_hash:
        st.session_state["import_file_hash"] = file_hash
        st.session_state.pop("import_analysis", None)

    try:
        df = smart_import.read_upload_file(file_bytes, up.name)
    except smart_import.ImportFormatError:
        st.error(IMPORT_FAIL_MSG)
        return
    with st.expander("📄 Pratinjau (10 baris teratas)", expanded=False):
        st.dataframe(df.head(10), use_container_width=True)

    if kind == "Struktur Cabang":
        if st.button("💾 Simpan struktur cabang", type="primary"):
            try:
                stats = smart_import.import_branches(df)
            except smart_import.ImportFormatError:
                st.error(IMPORT_FAIL_MSG)
                return
            _notify(stats["ok"], stats["message"])
            st.json({k: v for k, v in stats.items() if k not in ("ok", "message")})
        return

    if st.button("1. Analisis", type="primary"):
        try:
            st.session_state["import_analysis"] = smart_import.analyze_member_rows(df)
        except smart_import.ImportFormatError:
            st.error(IMPORT_FAIL_MSG)
            return

    analysis = st.session_state.get("import_analysis")
    if not analysis:
        return
    st.write(analysis["summary"])
    st.dataframe(smart_import.build_display_df(analysis["rows"]), use_container_width=True, hide_index=True)

    if st.button("2. Simpan ke database"):
        bar = st.progress(0)

        def _progress(done, total, msg):
            bar.progress(int(done * 100 / total) if total else 100)

        stats = smart_import.apply_member_import(analysis["rows"], progress_cb=_progress)
        st.success(f"Baru: {stats['new']} · Diperbarui: {stats['update']} · Gagal: {stats['fail']}")
        for seq, reason in stats["errors"]:
            st.caption(f"Baris {seq}: {reason}")
        st.session_state.pop("import_analysis", None)


def page_branches(user):
    st.markdown("### 🏢 Struktur Cabang")
    all_members = members.list_members()
    branch_list = branches.list_branches()

    for b in branch_list:
        count = branches.member_count(b, all_members)
        with st.expander(f"[{b.get('code', '')}] {b['name']} · {len(b.get('subBranches', []))} ranting · {count} anggota"):
            with st.form(f"branch_{b['id']}"):
                c1, c2, c3 = st.columns([1, 2, 2])
                code = c1.text_input("Kode", value=b.get("code", ""))
                name = c2.text_input("Nama Cabang", value=b.get("name", ""))
                leader = c3.text_input("Pimpinan", value=b.get("leader", ""))
                subs = pd.DataFrame(b.get("subBranches") or [],
                                    columns=["id", "code", "name", "leader", "latitude", "longitude"])
                edited = st.data_editor(subs, key=f"subs_{b['id']}", num_rows="dynamic",
                                        disabled=["id"], use_container_width=True, hide_index=True)
                saved = st.form_submit_button("💾 Simpan cabang")
            if saved:
                sub_rows = [
                    {k: v for k, v in row.items() if not (isinstance(v, float) and pd.isna(v)) and v is not None}
                    for row in edited.to_dict("records") if str(row.get("name") or "").strip()
                ]
                ok, msg, _ = cascade.save_branch({**b, "code": code, "name": name, "leader": leader,
                                                  "subBranches": sub_rows})
                _notify(ok, msg)
            with st.form(f"new_sub_{b['id']}", clear_on_submit=True):
                c1, c2, c3 = st.columns([1, 2, 2])
                sub_code = c1.text_input("Kode ranting")
                sub_name = c2.text_input("Nama ranting")
                sub_leader = c3.text_input("Pimpinan ranting")
                if st.form_submit_button("➕ Tambah ranting"):
                    ok, msg, _ = branches.add_sub_branch(b["id"], {"code": sub_code, "name": sub_name,
                                                                   "leader": sub_leader})
                    _notify(ok, msg)
            sub_options = {sb["id"]: sb.get("name", "") for sb in b.get("subBranches") or []}
            if sub_options:
                c1, c2 = st.columns([3, 1])
                sub_id = c1.selectbox("Ranting", list(sub_options), format_func=sub_options.get,
                                      key=f"delsub_pick_{b['id']}")
                if c2.button("🗑️ Hapus ranting", key=f"delsub_{b['id']}"):
                    _notify(*branches.delete_sub_branch(b["id"], sub_id))
                    st.rerun()
            if st.button("🗑️ Hapus cabang", key=f"delbr_{b['id']}"):
                _notify(*branches.delete_branch(b["id"]))
                st.rerun()

    st.markdown("---")
    with st.form("new_branch"):
        utils.ui_header("Tambah cabang")
        c1, c2, c3 = st.columns([1, 2, 2])
        code = c1.text_input("Kode")
        name = c2.text_input("Nama Cabang")
        leader = c3.text_input("Pimpinan")
        if st.form_submit_button("➕ Tambah"):
            ok, msg, _ = branches.upsert_branch({"code": code, "name": name, "leader": leader, "subBranches": []})
            _notify(ok, msg)


def page_positions(user):
    st.markdown("### 🏷️ Jabatan")
    positions = catalogs.list_positions()
    all_members = members.list_members()

    for p in positions:
        c1, c2, c3, c4 = st.columns([4, 1, 1, 1])
        new_name = c1.text_input("Jabatan", value=p, key=f"pos_{p}", label_visibility="collapsed")
        c2.caption(f"{sum(1 for m in all_members if m.get('position') == p)} anggota")
        if c3.button("💾", key=f"savepos_{p}") and new_name != p:
            ok, msg, _ = cascade.rename_position(p, new_name)
            _notify(ok, msg)
            st.rerun()
        if c4.button("🗑️", key=f"delpos_{p}"):
            _notify(*catalogs.delete_position(p))
            st.rerun()

    st.markdown("---")
    c1, c2 = st.columns([4, 1])
    new_pos = c1.text_input("Jabatan baru")
    if c2.button("➕ Tambah"):
        _notify(*catalogs.add_position(new_pos))
    if new_pos and st.button("✨ Saran deskripsi tugas (AI)"):
        with st.spinner("Menghubungi asisten AI..."):
            st.markdown(insights.suggest_job_description(new_pos))


def page_belt_levels(user):
    st.markdown("### 🥋 Tingkat Sabuk")
    belts = catalogs.list_belt_levels()

    for b in belts:
        with st.form(f"belt_{b['name']}"):
            c1, c2, c3, c4 = st.columns([3, 1, 3, 1])
            name = c1.text_input("Nama", value=b["name"])
            color = c2.color_picker("Warna", value=b.get("color") or catalogs.DEFAULT_BELT_COLOR)
            predicate = c3.text_input("Predikat", value=b.get("predicate", ""))
            c4.markdown(utils.belt_badge(b["name"], belts), unsafe_allow_html=True)
            if st.form_submit_button("💾 Simpan"):
                ok, msg, _ = cascade.update_belt_level(b["name"], {"name": name, "color": color, "predicate": predicate})
                _notify(ok, msg)
        if st.button("🗑️ Hapus", key=f"delbelt_{b['name']}"):
            _notify(*catalogs.delete_belt_level(b["name"]))
            st.rerun()

    st.markdown("---")
    with st.form("new_belt"):
        c1, c2, c3 = st.columns([3, 1, 3])
        name = c1.text_input("Nama")
        color = c2.color_picker("Warna", value=catalogs.DEFAULT_BELT_COLOR)
        predicate = c3.text_input("Predikat")
        if st.form_submit_button("➕ Tambah"):
            _notify(*catalogs.add_belt_level(name, color, predicate))


def page_profile(user):
    st.markdown("### 👤 Profil Saya")
    belts = catalogs.list_belt_levels()
    st.markdown(
        f"**{user.get('name')}** · NIA `{user.get('id')}` · {user.get('position')} · "
        f"{user.get('branch')} / {user.get('subBranch') or '-'} "
        + utils.belt_badge(user.get("beltLevel"), belts)
        + f" <i>{utils.belt_style(user.get('beltLevel'), belts)['predicate']}</i>",
        unsafe_allow_html=True,
    )
    if user.get("isCoach"):
        st.caption("⭐ PELATIH TERVERIFIKASI")

    with st.form("profile_form"):
        name = st.text_input("Nama", value=user.get("name", ""))
        email = st.text_input("Email", value=user.get("email", ""))
        kecamatan = st.text_input("Kecamatan", value=user.get("kecamatan", ""))
        password = st.text_input("Kata sandi baru", type="password", help="Kosongkan jika tidak diubah")
        if st.form_submit_button("💾 Simpan", type="primary"):
            _notify(*members.update_profile(user["id"], {
                "name": name, "email": email, "kecamatan": kecamatan, "password": password}))


def page_backup(user):
    st.markdown("### ⚙️ Data & Cadangan")
    st.download_button(
        "⬇️ Unduh cadangan (JSON)",
        backup.export_backup_json(),
        file_name=f"kbpc_backup_{datetime.now().strftime('%Y%m%d')}.json",
        mime="application/json",
    )
    up = st.file_uploader("📎 Pulihkan dari cadangan", type=["json"])
    if up is not None and st.button("♻️ Pulihkan"):
        ok, msg = backup.import_backup(up.getvalue())
        _notify(ok, msg)
        if ok:
            time.sleep(1)
            st.rerun()

    with st.expander("🧰 Isi penyimpanan"):
        st.caption(database.DB_PATH)
        st.dataframe(pd.DataFrame(database.list_keys()), use_container_width=True, hide_index=True)

    st.markdown("---")
    if st.button("⚠️ Reset ke data awal"):
        _notify(*backup.reset_database())
        st.session_state.pop("user_id", None)
        time.sleep(1)
        st.rerun()


PAGES = {
    "dashboard": page_dashboard,
    "members": page_members,
    "export": page_import_export,
    "branches": page_branches,
    "positions": page_positions,
    "belt_levels": page_belt_levels,
    "profile": page_profile,
    "backup": page_backup,
}


# ---------------------------------------------------------
# 4. Main
# ---------------------------------------------------------
def main():
    utils.apply_custom_css()
    utils.sidebar_logo()
    _bootstrap()

    user = _current_user()
    if user is None:
        page_login()
        return

    allowed = [(label, action) for label, action in MENU if members.is_allowed(user.get("role"), action)]
    with st.sidebar:
        st.markdown(f"**{user.get('name')}**  \n`{user.get('role')}`")
        label = st.radio("Menu", [label for label, _ in allowed], label_visibility="collapsed")
        st.markdown("---")
        if st.button("🚪 Keluar"):
            st.session_state.pop("user_id", None)
            st.rerun()

    action = dict(allowed)[label]
    PAGES[action](user)


if __name__ == "__main__":
    main()

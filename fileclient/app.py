import os
import time
import streamlit as st
import client as client

st.set_page_config(page_title="File Server Client", page_icon="📂", layout="wide")

# -----------------------------------------------------------------------------------------------------
# Initial state
# -----------------------------------------------------------------------------------------------------
if "console" not in st.session_state:
    st.session_state.console = []
if "show_console" not in st.session_state:
    st.session_state.show_console = False
if "server_socket" not in st.session_state:
    st.session_state.server_socket = None
if "files" not in st.session_state:
    st.session_state.files = []
if "delete_candidate" not in st.session_state:
    st.session_state.delete_candidate = None
if "download_path" not in st.session_state:
    st.session_state.download_path = "downloads"
if "host" not in st.session_state:
    st.session_state.host = "127.0.0.1"
if "port" not in st.session_state:
    st.session_state.port = 1508
if "username" not in st.session_state:
    st.session_state.username = ""
if "password" not in st.session_state:
    st.session_state.password = ""
if "connected_user" not in st.session_state:
    st.session_state.connected_user = None

# -----------------------------------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------------------------------

# --- CONSOLE ---

def log_message(msg: str):
    st.session_state.console.append(f"[{time.strftime('%H:%M:%S')}] {msg}")

def toggle_console():
    st.session_state.show_console = not st.session_state.show_console

def clear_console():
    st.session_state.console = []

# --- CONNECTION ---

def start_connection():
    """Connect button callback."""
    success, sock, message = client.connect_to_server(
        st.session_state.host,
        st.session_state.port,
        st.session_state.username,
        st.session_state.password,
    )
    log_message(message)
    if success:
        st.session_state.server_socket = sock
        st.session_state.connected_user = st.session_state.username
        refresh_files()
    else:
        st.session_state.server_socket = None

def drop_connection(reason):
    """Forget a socket the server has already closed."""
    log_message(f"🔌 {reason}")
    try:
        st.session_state.server_socket.close()
    except Exception:
        pass
    st.session_state.server_socket = None
    st.session_state.files = []

def disconnect():
    sock = st.session_state.server_socket
    if sock:
        try:
            log_message(client.cmd_QUIT(sock))
        except OSError as e:
            log_message(f"Error on QUIT: {e}")
    st.session_state.server_socket = None
    st.session_state.files = []

# --- FILES ---

def refresh_files():
    try:
        success, result = client.cmd_LIST(st.session_state.server_socket)
    except OSError as e:
        drop_connection(f"Connection lost: {e}")
        return
    if success:
        st.session_state.files = result
        log_message(f"📄 {len(result)} files on the server")
    else:
        log_message(f"❌ LIST failed: {result}")

def upload_to_server(uploaded_file):
    try:
        success, response = client.upload_bytes(
            st.session_state.server_socket, uploaded_file.name, uploaded_file.getvalue()
        )
    except OSError as e:
        drop_connection(f"Connection lost: {e}")
        return
    log_message(("✅ " if success else "❌ ") + response)
    refresh_files()

def download_file(remote_name):
    """Save a file into the download directory."""
    download_path = os.path.abspath(st.session_state.download_path)
    os.makedirs(download_path, exist_ok=True)
    local_path = os.path.join(download_path, remote_name)
    try:
        success, message = client.cmd_GET(st.session_state.server_socket, remote_name, local_path)
    except OSError as e:
        drop_connection(f"Connection lost: {e}")
        return
    log_message(("✅ " if success else "❌ ") + message)

def confirm_and_delete(remote_name):
    try:
        success, response = client.cmd_DEL(st.session_state.server_socket, remote_name)
    except OSError as e:
        drop_connection(f"Connection lost: {e}")
        return
    log_message(("🗑️ " if success else "❌ ") + response)
    st.session_state.delete_candidate = None
    refresh_files()

def ping():
    try:
        log_message(client.cmd_PING(st.session_state.server_socket))
    except OSError as e:
        drop_connection(f"Connection lost: {e}")

# -----------------------------------------------------------------------------------------------------
# Sidebar
# -----------------------------------------------------------------------------------------------------
st.sidebar.title("📊 Control Panel")

if st.session_state.server_socket:
    st.sidebar.success(f"🔗 Connected as {st.session_state.connected_user}")

    col_conn1, col_conn2 = st.sidebar.columns(2)
    with col_conn1:
        st.button("📶 Ping", use_container_width=True, key="ping_btn", on_click=ping)
    with col_conn2:
        st.button("🚪 Disconnect", use_container_width=True, key="disconnect_btn", on_click=disconnect)

    st.sidebar.markdown("---")
    with st.sidebar.expander("📥 Downloads", expanded=False):
        st.text_input("Download directory:", key="download_path")
        st.caption(f"Path: {os.path.abspath(st.session_state.download_path)}")
else:
    st.sidebar.warning("🔌 Not connected")

st.sidebar.markdown("---")
st.sidebar.subheader("🔧 Utilities")
console_text = "Show console" if not st.session_state.show_console else "Hide console"
st.sidebar.button(f"🖥️ {console_text}", use_container_width=True, key="console_toggle_btn", on_click=toggle_console)

# -----------------------------------------------------------------------------------------------------
# Login page
# -----------------------------------------------------------------------------------------------------
if not st.session_state.server_socket:
    st.title("Sahar's file server")
    with st.form("login_form"):
        st.text_input("Host", key="host")
        st.number_input("Port", min_value=1, max_value=65535, step=1, key="port")
        st.text_input("Username", key="username")
        st.text_input("Password", type="password", key="password")
        st.form_submit_button("Connect", on_click=start_connection)

# -----------------------------------------------------------------------------------------------------
# File management page
# -----------------------------------------------------------------------------------------------------
else:
    st.title("Files")

    col_top1, col_top2 = st.columns([1, 3])
    with col_top1:
        st.button("🔄 Refresh", key="refresh_btn", on_click=refresh_files)
    with col_top2:
        uploaded = st.file_uploader("Upload a file", key="uploader")
        if uploaded is not None and st.button("📤 Upload", key="upload_btn"):
            upload_to_server(uploaded)
            st.rerun()

    if not st.session_state.files:
        st.info("The server directory is empty.")

    for name, size in st.session_state.files:
        col_name, col_size, col_get, col_del = st.columns([4, 2, 1, 1])
        col_name.write(f"📄 {name}")
        col_size.write(f"{size} bytes")
        col_get.button("⬇️", key=f"get_{name}", help=f"Download {name}", on_click=download_file, args=(name,))
        col_del.button("🗑️", key=f"del_{name}", help=f"Delete {name}",
                       on_click=lambda n=name: setattr(st.session_state, "delete_candidate", n))

        if st.session_state.delete_candidate == name:
            st.warning(f"Delete {name}?")
            col_yes, col_no = st.columns(2)
            col_yes.button("Yes, delete", key=f"confirm_del_{name}", on_click=confirm_and_delete, args=(name,))
            col_no.button("Cancel", key=f"cancel_del_{name}",
                          on_click=lambda: setattr(st.session_state, "delete_candidate", None))

# -----------------------------------------------------------------------------------------------------
# Console
# -----------------------------------------------------------------------------------------------------
if st.session_state.show_console:
    st.markdown("---")
    st.subheader("🖥️ Console")
    st.code("\n".join(st.session_state.console[-200:]) or "(empty)")
    st.button("Clear console", key="clear_console_btn", on_click=clear_console)

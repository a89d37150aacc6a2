"""
Postal Quality Console - Main Entry Point
Navigation hub for the allocation plan engine
"""
import streamlit as st
from utils.config import config
import logging

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Page config
st.set_page_config(
    page_title="Postal Quality Console",
    page_icon="📮",
    layout="wide",
    initial_sidebar_state="expanded"
)

# ==================== CUSTOM STYLES ====================

st.markdown("""
<style>
    .module-card {
        background: linear-gradient(135deg, #667eea 0%, #764ba2 100%);
        border-radius: 12px;
        padding: 25px;
        color: white;
        text-align: center;
        height: 180px;
        display: flex;
        flex-direction: column;
        justify-content: center;
    }
    .module-card.green {
        background: linear-gradient(135deg, #11998e 0%, #38ef7d 100%);
    }
    .module-card h3 {
        margin: 0 0 10px 0;
        font-size: 1.4rem;
    }
    .module-card p {
        margin: 0;
        font-size: 0.9rem;
        opacity: 0.9;
    }
    .module-icon {
        font-size: 2.5rem;
        margin-bottom: 10px;
    }
    .welcome-header {
        text-align: center;
        padding: 20px 0;
    }
</style>
""", unsafe_allow_html=True)


# ==================== OVERVIEW ====================

@st.cache_data(ttl=config.get_app_setting('CACHE_TTL_SECONDS', 300))
def load_overview(client_id: int) -> dict:
    """Plan counts for the overview strip"""
    from utils.plan_engine import PlanEngineData

    plans = PlanEngineData().list_plans(client_id)
    if plans.empty:
        return {'drafts': 0, 'merged': 0, 'events': 0, 'unassigned': 0}

    merged = plans[plans['status'] == 'merged']
    return {
        'drafts': int((plans['status'] == 'draft').sum()),
        'merged': int(len(merged)),
        'events': int(merged['calculated_events'].sum()),
        'unassigned': int(merged['unassigned_events'].sum()),
    }


@st.cache_data(ttl=config.get_app_setting('CACHE_TTL_SECONDS', 300))
def load_clients() -> list:
    from utils.plan_engine import PlanEngineData
    return PlanEngineData().get_client_ids()


# ==================== HUB PAGE ====================

def show_hub_page():
    """Display module navigation"""

    with st.sidebar:
        st.markdown("### 📮 Postal Quality Console")
        clients = load_clients()
        if clients:
            st.session_state['client_id'] = st.selectbox(
                "Client",
                clients,
                index=clients.index(st.session_state['client_id']) if st.session_state.get('client_id') in clients else 0,
                key="hub_client"
            )
        else:
            st.info("No clients configured yet")
        st.caption(f"{'☁️ Cloud' if config.is_cloud else '💻 Local'}")

    st.markdown("""
    <div class="welcome-header">
        <h1>📮 Allocation Plan Engine</h1>
        <p>Generate shipment calendars, merge them, and rebalance panelists</p>
    </div>
    """, unsafe_allow_html=True)

    col1, col2, col3 = st.columns([1, 2, 1])

    with col2:
        module_col1, module_col2 = st.columns(2)

        with module_col1:
            st.markdown("""
            <div class="module-card">
                <div class="module-icon">🧠</div>
                <h3>Plan Generator</h3>
                <p>Classification + seasonality driven plans</p>
            </div>
            """, unsafe_allow_html=True)

            if st.button("Open Plan Generator", key="btn_generator", use_container_width=True):
                st.switch_page("pages/1_🧠_Plan_Generator.py")

        with module_col2:
            st.markdown("""
            <div class="module-card green">
                <div class="module-icon">🔁</div>
                <h3>Panelist Reassignment</h3>
                <p>Move in-flight events between nodes</p>
            </div>
            """, unsafe_allow_html=True)

            if st.button("Open Reassignment", key="btn_reassign", use_container_width=True):
                st.switch_page("pages/2_🔁_Panelist_Reassignment.py")

    client_id = st.session_state.get('client_id')
    if not client_id:
        return

    st.markdown("")
    st.markdown("---")
    st.markdown("##### 📊 Quick Overview")

    overview = load_overview(client_id)
    stat1, stat2, stat3, stat4 = st.columns(4)
    with stat1:
        st.metric("📝 Draft plans", f"{overview['drafts']:,}")
    with stat2:
        st.metric("✅ Merged plans", f"{overview['merged']:,}")
    with stat3:
        st.metric("📦 Live events", f"{overview['events']:,}")
    with stat4:
        st.metric("⚠️ Unassigned", f"{overview['unassigned']:,}")

    st.caption("💡 Tip: Use sidebar navigation or click module cards above to switch between modules")


# ==================== MAIN ====================

def main():
    """Main entry point"""
    show_hub_page()


if __name__ == "__main__":
    main()

# main.py

"""Streamlit web UI for the batch deidentification pipeline.

Accepts a text or CSV document, runs it through the pipeline with the
application settings and shows the deidentified table of every batch.
"""

import streamlit as st
import logging

from deid_pipeline.core.exceptions import DeidentifyError
from deid_pipeline.logging_config import configure_logging
from deid_pipeline.service.config import settings
from deid_pipeline.service.pipeline import DeidentifyText
from deid_pipeline.service.sources import read_records

configure_logging(settings.log_level)

logger = logging.getLogger(__name__)


def main():
    """Run the Streamlit application UI.

    Builds the records from the uploaded or pasted document, invokes the
    pipeline, and displays one table per deidentified batch.
    """
    st.set_page_config(
        layout="wide", page_title="Batch Deidentification", page_icon="🛡️"
    )

    st.title("Batch Deidentification")
    st.markdown(
        "Deidentify free text or CSV rows in size-bounded batches."
    )
    st.markdown("---")

    col1, col2 = st.columns(2)

    with col1:
        st.subheader("Input Document")
        uploaded = st.file_uploader("Upload a file", type=["txt", "csv"])
        text_input = st.text_area(
            "Or paste content",
            height=300,
            placeholder="One record per line...",
        )
        is_csv = st.checkbox("CSV input (first line is the header)")
        delimiter = st.text_input(
            "Column delimiter", value=settings.csv_column_delimiter or ","
        )

    with col2:
        st.subheader("Deidentified Output")

        if st.button("Deidentify", type="primary"):
            if uploaded is not None:
                key = uploaded.name
                content = uploaded.getvalue().decode("utf-8")
            else:
                key = "pasted.txt"
                content = text_input

            if not content or not content.strip():
                st.warning("Please provide content to process.")
                logger.warning("Deidentify attempted with empty input")

            else:
                try:
                    records, headers = read_records(
                        key,
                        content,
                        has_header=is_csv,
                        delimiter=delimiter if is_csv else None,
                    )
                    pipeline = DeidentifyText.from_settings(
                        settings,
                        csv_headers=headers,
                        csv_column_delimiter=delimiter if is_csv else None,
                    )

                    with st.spinner("Deidentifying..."):
                        logger.info(
                            f"Processing {len(records)} records from {key}"
                        )
                        results = list(pipeline.expand(records))

                    for index, result in enumerate(results, start=1):
                        overview = result.response.overview
                        st.caption(
                            f"Batch {index} of {result.key}: "
                            f"{len(result.response.item.rows)} rows, "
                            f"{sum(overview.transformed_counts.values())} findings"
                        )
                        st.dataframe(result.response.item.as_dicts())

                    st.success(f"Deidentification complete. {len(results)} batches sent.")

                except DeidentifyError as e:
                    st.error(f"Deidentification failed: {e}")
                    logger.error(
                        "Deidentification returned error status",
                        exc_info=True,
                        extra={"status": "failed", "key": key},
                    )

                except Exception:
                    st.error("An unexpected error occurred during deidentification.")
                    logger.error(
                        "Unexpected error in main application loop",
                        exc_info=True,
                        extra={"key": key},
                    )

    with st.sidebar:
        st.header("Settings")
        st.markdown(
            f"""
        - **Project**: `{settings.project_id}`
        - **Batch size**: {settings.batch_size_bytes} bytes
        - **Deidentify template**: `{settings.deidentify_template_name}`
        - **Service**: {settings.service_url or "in-process Presidio"}
        """
        )


if __name__ == "__main__":
    main()

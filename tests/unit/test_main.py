"""
Unit Tests - Batch Entry Point
"""
from sqlalchemy import create_engine, inspect

from pricing_promo.config import get_parameter_store
from pricing_promo.main import build_parser, main
from pricing_promo.transformation.transformers import BI_TABLES


class TestMain:
    """Tests for the pricing-promo command"""

    def test_parameter_flags(self):
        """Test parameter overrides are parsed with their types"""
        args = build_parser().parse_args(["--discount-threshold", "0.1", "--min-baseline-n", "5"])

        assert args.discount_threshold == 0.1
        assert args.min_baseline_n == 5
        assert args.window_start is None

    def test_generate_run_and_publish(self, tmp_path):
        """Test a full run publishes parquet files and database tables"""
        source_dir = tmp_path / "raw"
        output_dir = tmp_path / "curated"
        db_url = f"sqlite:///{tmp_path / 'bi.db'}"

        code = main([
            "--generate",
            "--seed", "3",
            "--source-dir", str(source_dir),
            "--output-dir", str(output_dir),
            "--database-url", db_url,
        ])

        assert code == 0
        assert sorted(p.stem for p in output_dir.glob("*.parquet")) == sorted(BI_TABLES)
        engine = create_engine(db_url)
        try:
            assert set(BI_TABLES) <= set(inspect(engine).get_table_names())
        finally:
            engine.dispose()

    def test_invalid_parameter_exits_2(self, tmp_path):
        """Test a rejected override stops before loading and keeps the current parameters"""
        before = get_parameter_store().get()

        code = main(["--window-start", "2017-13", "--source-dir", str(tmp_path)])

        assert code == 2
        assert get_parameter_store().get() is before

    def test_missing_sources_exit_1(self, tmp_path):
        """Test a missing extract directory is a failed run"""
        code = main(["--source-dir", str(tmp_path / "nothing"), "--output-dir", str(tmp_path / "out")])

        assert code == 1
        assert not (tmp_path / "out").exists()

    def test_unreachable_database_exits_1(self, tmp_path):
        """Test a database that cannot be opened fails the run before any table is published"""
        output_dir = tmp_path / "curated"
        db_url = f"sqlite:///{tmp_path / 'no_such_dir' / 'bi.db'}"

        code = main([
            "--generate",
            "--seed", "3",
            "--source-dir", str(tmp_path / "raw"),
            "--output-dir", str(output_dir),
            "--database-url", db_url,
        ])

        assert code == 1
        assert not list(output_dir.glob("*.parquet"))
        assert not (tmp_path / "raw").exists()

"""Tests for the Software Carbon Intensity calculator."""

from datetime import datetime, timezone

import pytest

from ecotrace.carbon_calculation.config import CarbonCalculationConfig
from ecotrace.carbon_calculation.models import SCIRating, parse_activity
from ecotrace.carbon_calculation.sci_calculator import SCICalculator

ACTIVITY_TIME = datetime.now(timezone.utc).isoformat()


@pytest.fixture
def calculator(config):
    return SCICalculator(config)


@pytest.fixture
def compute_activity(compute_payload):
    return parse_activity(compute_payload)


class TestCalculateSCI:
    """Tests for calculate_sci."""

    def test_compute_scenario(self, calculator, compute_activity):
        """4 vCPU for 1 h in US-VA at 400 gCO2e/kWh rates C."""
        sci = calculator.calculate_sci(
            compute_activity, energy_kwh=0.01135, carbon_intensity=400.0, zone="US-VA",
        )

        assert sci.functional_unit == 4.0
        assert sci.functional_unit_spec.type == "vcpu_hours"
        assert sci.carbon_intensity == pytest.approx(460.0)
        assert sci.components.operational == pytest.approx(5.221)
        assert sci.components.embodied == pytest.approx(44.166, rel=1e-3)
        assert sci.sci_value == pytest.approx(12.347, rel=1e-3)
        assert sci.sci_rating == SCIRating.C
        assert sci.methodology.temporal == "real_time"
        assert sci.methodology.marginal is True

    def test_sci_formula(self, calculator, compute_activity):
        sci = calculator.calculate_sci(compute_activity, 0.02, 300.0, zone="DE")
        expected = (sci.components.operational + sci.components.embodied) / sci.functional_unit
        assert sci.sci_value == pytest.approx(expected)

    def test_without_marginal_or_embodied(self, compute_activity):
        calculator = SCICalculator(CarbonCalculationConfig(
            sci_use_marginal=False, sci_include_embodied=False,
            sci_temporal_resolution="daily",
        ))

        sci = calculator.calculate_sci(compute_activity, 0.01135, 400.0, zone="US-VA")

        assert sci.carbon_intensity == pytest.approx(400.0)
        assert sci.embodied_emissions == 0
        assert sci.sci_value == pytest.approx(0.01135 * 400 / 4)
        assert sci.methodology.temporal == "time_averaged"

    def test_zero_energy(self, calculator):
        activity = parse_activity({
            "activity_type": "data_transfer",
            "timestamp": ACTIVITY_TIME,
            "metadata": {"bytes_transferred": 0},
        })
        sci = calculator.calculate_sci(activity, 0.0, 400.0)
        assert sci.components.operational == 0
        assert sci.functional_unit == 1.0


class TestComponents:
    """Tests for multipliers, embodied emissions and functional units."""

    @pytest.mark.parametrize("zone,multiplier", [
        ("US-VA", 1.15),
        ("DE", 1.25),
        ("IN", 1.45),
        ("ZA", 1.15),
        (None, 1.15),
    ])
    def test_marginal_multiplier(self, zone, multiplier):
        assert SCICalculator.marginal_multiplier(zone) == multiplier

    def test_embodied_scales_with_time_share(self, calculator, compute_payload):
        compute_payload["metadata"]["duration"] = 1800
        half_hour = calculator.embodied_emissions(parse_activity(compute_payload))
        compute_payload["metadata"]["duration"] = 7200
        two_hours = calculator.embodied_emissions(parse_activity(compute_payload))

        assert half_hour.time_share == 0.5
        assert two_hours.time_share == 1.0
        assert half_hour.total == pytest.approx(two_hours.total / 2)

    def test_embodied_breakdown_adds_up(self, calculator, compute_activity):
        b = calculator.embodied_emissions(compute_activity)
        parts = b.servers + b.networking + b.storage + b.software + b.infrastructure
        assert b.total == pytest.approx(parts * b.time_share)
        assert b.utilization_rate == 0.7
        assert b.lifespan_years == 4

    def test_longer_lifespan_lowers_hardware_share(self, compute_activity):
        short = SCICalculator(CarbonCalculationConfig(hardware_lifespan_years=2))
        long = SCICalculator(CarbonCalculationConfig(hardware_lifespan_years=6))
        assert (
            long.embodied_emissions(compute_activity).servers
            < short.embodied_emissions(compute_activity).servers
        )

    def test_functional_units(self):
        transfer = parse_activity({
            "activity_type": "data_transfer",
            "timestamp": ACTIVITY_TIME,
            "metadata": {"bytes_transferred": 5 * 1024 ** 2},
        })
        storage = parse_activity({
            "activity_type": "storage",
            "timestamp": ACTIVITY_TIME,
            "metadata": {"size_gb": 10, "duration": 7200},
        })
        commit = parse_activity({
            "activity_type": "commit", "timestamp": ACTIVITY_TIME, "metadata": {},
        })

        assert SCICalculator.functional_unit(transfer).value == pytest.approx(5.0)
        assert SCICalculator.functional_unit(storage).value == pytest.approx(20.0)
        assert SCICalculator.functional_unit(commit).type == "operation"

    def test_functional_unit_floor(self, compute_payload):
        compute_payload["metadata"]["duration"] = 60
        spec = SCICalculator.functional_unit(parse_activity(compute_payload))
        assert spec.value == 1.0


class TestRating:
    @pytest.mark.parametrize("value,rating", [
        (0.0, SCIRating.A),
        (5.0, SCIRating.A),
        (5.01, SCIRating.B),
        (10.0, SCIRating.B),
        (20.0, SCIRating.C),
        (40.0, SCIRating.D),
        (40.01, SCIRating.E),
    ])
    def test_compute_bands(self, value, rating):
        assert SCICalculator.rate(value, "cloud_compute") == rating

    def test_other_types_use_generic_bands(self):
        assert SCICalculator.rate(10.0, "commit") == SCIRating.A
        assert SCICalculator.rate(501.0, "electricity") == SCIRating.E

    def test_monotone(self):
        values = [0.001, 0.03, 0.07, 0.3, 2.0]
        ranks = [SCICalculator.rate(v, "data_transfer").value for v in values]
        assert ranks == sorted(ranks)


class TestCompliance:
    def test_fully_compliant(self, calculator, compute_activity):
        sci = calculator.calculate_sci(compute_activity, 0.001, 10.0, zone="FR")
        report = SCICalculator.validate_sci_compliance(sci)

        assert sci.sci_rating in (SCIRating.A, SCIRating.B, SCIRating.C)
        assert report.is_compliant
        assert report.compliance_score == 1.0
        assert report.issues == []

    def test_issues_reduce_score(self, compute_activity):
        calculator = SCICalculator(CarbonCalculationConfig(
            sci_use_marginal=False, sci_include_embodied=False,
            sci_temporal_resolution="daily",
        ))
        sci = calculator.calculate_sci(compute_activity, 10.0, 800.0)

        report = SCICalculator.validate_sci_compliance(sci)

        assert sci.sci_rating == SCIRating.E
        assert not report.is_compliant
        assert len(report.issues) == 4
        assert len(report.recommendations) == 4
        assert report.compliance_score == pytest.approx(0.2)


class TestCalculateForResult:
    @pytest.mark.asyncio
    async def test_transport_has_no_score(self, calculator, engine):
        activity = parse_activity({
            "activity_type": "transport",
            "timestamp": ACTIVITY_TIME,
            "metadata": {"distance_km": 5},
        })
        result = await engine.calculate(activity)
        assert calculator.calculate_for_result(activity, result) is None

    @pytest.mark.asyncio
    async def test_uses_result_energy_and_zone(self, calculator, engine, compute_activity):
        result = await engine.calculate(compute_activity)

        sci = calculator.calculate_for_result(compute_activity, result)

        assert sci.energy_consumption == pytest.approx(result.energy_kwh)
        assert sci.carbon_intensity == pytest.approx(result.carbon_intensity * 1.15)

"""
Tax configurations and tax arithmetic for estimates and invoices.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from database.models import TaxConfiguration
from services.errors import NotFoundError
from services.event_logger import get_event_logger
from validators import ValidationError, parse_number, validate_number_range

logger = logging.getLogger(__name__)


def round_money(value) -> float:
    return round(float(value or 0), 2)


def calculate_line_item(quantity, unit_price, tax_rate=0, percent=False) -> Dict[str, float]:
    """
    Price one line.

    Estimate items carry a percentage rate (7.5 means 7.5 %), invoice items a
    fraction (0.075); pass percent=True for the former.
    """
    rate = float(tax_rate or 0)
    if percent:
        rate = rate / 100
    subtotal = round_money(float(quantity or 0) * float(unit_price or 0))
    tax_amount = round_money(subtotal * rate)
    return {
        'subtotal': subtotal,
        'tax_amount': tax_amount,
        'total': round_money(subtotal + tax_amount)
    }


def sum_line_items(items: List[Dict]) -> Dict[str, float]:
    subtotal = round_money(sum(i['subtotal'] for i in items))
    tax_amount = round_money(sum(i['tax_amount'] for i in items))
    return {
        'subtotal': subtotal,
        'tax_amount': tax_amount,
        'total': round_money(subtotal + tax_amount)
    }


class TaxService:
    """Tax configuration storage and rate lookup."""

    def __init__(self, session: Session, user_id: str = None):
        self.session = session
        self.user_id = user_id
        self.events = get_event_logger(session, user_id)

    def _get(self, config_id: str) -> TaxConfiguration:
        config = self.session.get(TaxConfiguration, config_id)
        if not config:
            raise NotFoundError('tax_configuration', config_id)
        return config

    def _validate_rate(self, value):
        rate = parse_number(value, 'rate')
        if rate is None:
            raise ValidationError("Tax rate is required", 'rate')
        is_valid, _ = validate_number_range(rate, 0, 1)
        if not is_valid:
            raise ValidationError("Tax rate must be between 0 and 1", 'rate')
        return rate

    def _clear_default(self, keep_id: str = None):
        query = self.session.query(TaxConfiguration).filter(TaxConfiguration.is_default == True)
        if keep_id:
            query = query.filter(TaxConfiguration.id != keep_id)
        for other in query.all():
            other.is_default = False

    # =========================================================================
    # CONFIGURATIONS
    # =========================================================================

    def list_configurations(self) -> List[Dict]:
        configs = self.session.query(TaxConfiguration).order_by(
            TaxConfiguration.is_default.desc(), TaxConfiguration.name
        ).all()
        return [c.to_dict() for c in configs]

    def get_configuration(self, config_id: str) -> Dict:
        return self._get(config_id).to_dict()

    def get_default_configuration(self) -> Optional[TaxConfiguration]:
        return self.session.query(TaxConfiguration).filter(
            TaxConfiguration.is_default == True
        ).first()

    def create_configuration(self, data: Dict) -> Dict:
        name = (data.get('name') or '').strip()
        if not name:
            raise ValidationError("Name is required", 'name')
        rate = self._validate_rate(data.get('rate'))

        is_default = bool(data.get('is_default', False))
        if is_default:
            self._clear_default()

        config = TaxConfiguration(
            name=name,
            rate=rate,
            is_default=is_default,
            applies_to=data.get('applies_to') or []
        )
        self.session.add(config)
        self.session.flush()

        self.events.log_create('tax_configuration', config.id, f"Tax configuration '{name}' was created",
                               {'rate': rate, 'is_default': is_default})
        logger.info(f"Created tax configuration: {config.id}")
        return config.to_dict()

    def update_configuration(self, config_id: str, data: Dict) -> Dict:
        config = self._get(config_id)

        changes = {}
        if 'name' in data:
            name = (data.get('name') or '').strip()
            if not name:
                raise ValidationError("Name is required", 'name')
            data = {**data, 'name': name}
        if 'rate' in data:
            data = {**data, 'rate': self._validate_rate(data['rate'])}
        if data.get('is_default'):
            self._clear_default(keep_id=config.id)

        for key in ('name', 'rate', 'is_default', 'applies_to'):
            if key in data:
                old_value = getattr(config, key)
                if old_value != data[key]:
                    changes[key] = {'old': old_value, 'new': data[key]}
                setattr(config, key, data[key])

        config.updated_at = datetime.utcnow()
        self.session.flush()

        self.events.log_update('tax_configuration', config.id, changes)
        logger.info(f"Updated tax configuration: {config_id}")
        return config.to_dict()

    def delete_configuration(self, config_id: str) -> bool:
        config = self._get(config_id)
        self.session.delete(config)
        self.session.flush()
        self.events.log_delete('tax_configuration', config_id, f"Tax configuration '{config.name}' was deleted")
        logger.info(f"Deleted tax configuration: {config_id}")
        return True

    # =========================================================================
    # CALCULATION
    # =========================================================================

    def resolve_rate(self, tax_rate=None, config_id: str = None) -> float:
        """Explicit rate, else the named configuration, else the default, else 0."""
        if tax_rate is not None:
            return self._validate_rate(tax_rate)
        if config_id:
            return float(self._get(config_id).rate)
        default = self.get_default_configuration()
        return float(default.rate) if default else 0.0

    def calculate_tax(self, base_amount, tax_rate=None, config_id: str = None) -> Dict[str, float]:
        base = parse_number(base_amount, 'base_amount')
        if base is None:
            raise ValidationError("Base amount is required", 'base_amount')
        if base < 0:
            raise ValidationError("Base amount must be at least 0", 'base_amount')

        rate = self.resolve_rate(tax_rate, config_id)
        tax_amount = round_money(base * rate)
        return {
            'base_amount': round_money(base),
            'tax_rate': rate,
            'tax_amount': tax_amount,
            'total_amount': round_money(base + tax_amount)
        }

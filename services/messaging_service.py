"""
Messaging Service - Outbound email and SMS to customers.

Email goes through SendGrid when the active email provider carries an
api_key, otherwise through SMTP (provider settings first, then the SMTP_*
configuration). SMS goes through Twilio. Every delivery attempt is written
to message_logs; customer-facing sends are also recorded as Message rows with
one MessageRecipient per customer.
"""

import base64
import html
import logging
import smtplib
from datetime import datetime
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List, Dict, Any, Optional, Tuple

import requests
from sqlalchemy.orm import Session

from app.utils.formatters import format_phone_number, is_valid_phone_number
from config import get_settings
from database.models import Customer, Message, MessageLog, MessageProvider, MessageRecipient
from services.errors import NotFoundError, ProviderError
from services.estimate_repository import EstimateRepository
from services.event_logger import get_event_logger
from services.invoice_repository import InvoiceRepository
from services.list_query import filter_records
from services.pdf_service import build_estimate_pdf, build_invoice_pdf
from validators import ValidationError, validate_message_request, raise_for_errors

logger = logging.getLogger(__name__)

MESSAGE_BOXES = ('inbox', 'sent', 'all')
PROVIDER_TYPES = ('email', 'sms')
MESSAGE_SEARCH_FIELDS = ['subject', 'content']

Attachment = Tuple[str, bytes]


class MessagingService:
    """Sends customer email/SMS and keeps the message history."""

    def __init__(self, session: Session, user_id: str = None, settings: Dict[str, Any] = None):
        self.session = session
        self.user_id = user_id
        self.settings = settings if settings is not None else get_settings()
        self.events = get_event_logger(session, user_id)

    # =========================================================================
    # PROVIDERS
    # =========================================================================

    def _provider(self, provider_type: str) -> Optional[MessageProvider]:
        return self.session.query(MessageProvider).filter(
            MessageProvider.type == provider_type,
            MessageProvider.is_active == True
        ).order_by(MessageProvider.created_at.desc()).first()

    def _email_config(self) -> Dict[str, Any]:
        provider = self._provider('email')
        config = dict(provider.settings or {}) if provider else {}
        config['provider_id'] = provider.id if provider else None
        config.setdefault('from_email', self.settings.get('FROM_EMAIL'))
        config.setdefault('from_name', self.settings.get('FROM_NAME'))

        if config.get('api_key'):
            config['transport'] = 'sendgrid'
            return config

        config.setdefault('smtp_host', self.settings.get('SMTP_HOST'))
        config.setdefault('smtp_port', self.settings.get('SMTP_PORT', 587))
        config.setdefault('smtp_user', self.settings.get('SMTP_USER'))
        config.setdefault('smtp_password', self.settings.get('SMTP_PASSWORD'))
        if not config.get('smtp_host'):
            raise ProviderError('Email provider not configured')
        config['transport'] = 'smtp'
        return config

    def _sms_config(self) -> Dict[str, Any]:
        provider = self._provider('sms')
        config = dict(provider.settings or {}) if provider else {}
        if not config.get('account_sid') or not config.get('auth_token'):
            raise ProviderError('SMS provider not configured')
        config['provider_id'] = provider.id
        return config

    def _log(self, message_type: str, recipient: str, subject: Optional[str], content: str,
             error: str = None, provider_id: str = None):
        self.session.add(MessageLog(
            provider_id=provider_id,
            message_type=message_type,
            recipient=recipient,
            subject=subject,
            content=content,
            status='failed' if error else 'sent',
            error=error
        ))
        self.session.flush()

    # =========================================================================
    # TRANSPORTS
    # =========================================================================

    def _email_html(self, message: str, customer_name: str = None) -> str:
        body = html.escape(message).replace('\n', '<br/>')
        greeting = f"<p>Dear {html.escape(customer_name)},</p>" if customer_name else ''
        signature = f"<p>Best regards,<br/>{html.escape(self.settings.get('COMPANY_NAME', 'LawnBoss'))} Team</p>"
        return f"<div style=\"font-family: Arial, sans-serif; line-height: 1.6; color: #333;\">{greeting}<p>{body}</p>{signature}</div>"

    def _send_sendgrid(self, config: Dict, to: str, subject: str, text: str, html_body: str,
                       attachments: List[Attachment]):
        payload = {
            'personalizations': [{'to': [{'email': to}]}],
            'from': {'email': config['from_email'], 'name': config['from_name']},
            'subject': subject,
            'content': [
                {'type': 'text/plain', 'value': text},
                {'type': 'text/html', 'value': html_body}
            ]
        }
        if attachments:
            payload['attachments'] = [{
                'content': base64.b64encode(data).decode('ascii'),
                'filename': filename,
                'type': 'application/pdf',
                'disposition': 'attachment'
            } for filename, data in attachments]

        response = requests.post(
            self.settings.get('SENDGRID_API_URL'),
            json=payload,
            headers={'Authorization': f"Bearer {config['api_key']}", 'Content-Type': 'application/json'},
            timeout=self.settings.get('PROVIDER_TIMEOUT', 30)
        )
        if response.status_code >= 400:
            raise ProviderError(f"Failed to send email: {response.text}")

    def _send_smtp(self, config: Dict, to: str, subject: str, text: str, html_body: str,
                   attachments: List[Attachment]):
        msg = MIMEMultipart('mixed')
        msg['Subject'] = subject
        msg['From'] = f"{config['from_name']} <{config['from_email']}>"
        msg['To'] = to

        body = MIMEMultipart('alternative')
        body.attach(MIMEText(text, 'plain'))
        body.attach(MIMEText(html_body, 'html'))
        msg.attach(body)

        for filename, data in attachments:
            part = MIMEApplication(data, _subtype='pdf')
            part.add_header('Content-Disposition', 'attachment', filename=filename)
            msg.attach(part)

        with smtplib.SMTP(config['smtp_host'], int(config['smtp_port'])) as server:
            server.starttls()
            if config.get('smtp_user'):
                server.login(config['smtp_user'], config['smtp_password'])
            server.send_message(msg)

    def send_email(self, to: str, subject: str, message: str, customer_name: str = None,
                   message_type: str = 'custom_email', attachments: List[Attachment] = None,
                   html_body: str = None) -> Dict:
        """
        Send one email. Raises ProviderError when no provider is configured or
        delivery fails; the attempt is logged either way.
        """
        if not to:
            raise ValidationError('Recipient email is required', 'to')
        config = self._email_config()
        html_body = html_body or self._email_html(message, customer_name)
        attachments = attachments or []

        try:
            if config['transport'] == 'sendgrid':
                self._send_sendgrid(config, to, subject, message, html_body, attachments)
            else:
                self._send_smtp(config, to, subject, message, html_body, attachments)
        except ProviderError as e:
            self._log(message_type, to, subject, message, e.message, config['provider_id'])
            logger.error(f"Email to {to} failed: {e.message}")
            raise
        except (requests.RequestException, smtplib.SMTPException, OSError) as e:
            error = f"Failed to send email: {e}"
            self._log(message_type, to, subject, message, error, config['provider_id'])
            logger.error(f"Email to {to} failed: {e}")
            raise ProviderError(error)

        self._log(message_type, to, subject, message, provider_id=config['provider_id'])
        logger.info(f"Sent {message_type} to {to} via {config['transport']}")
        return {'success': True, 'transport': config['transport']}

    def send_sms(self, to: str, message: str, message_type: str = 'custom_sms') -> Dict:
        """Send one SMS through Twilio. The number is normalised to E.164 first."""
        phone = format_phone_number(to or '')
        if not is_valid_phone_number(phone):
            raise ValidationError('Invalid phone number', 'to')
        config = self._sms_config()

        data = {'To': phone, 'Body': message}
        if config.get('messaging_service_sid'):
            data['MessagingServiceSid'] = config['messaging_service_sid']
        else:
            data['From'] = config.get('from_number')

        try:
            response = requests.post(
                self.settings.get('TWILIO_API_URL').format(account_sid=config['account_sid']),
                data=data,
                auth=(config['account_sid'], config['auth_token']),
                timeout=self.settings.get('PROVIDER_TIMEOUT', 30)
            )
        except requests.RequestException as e:
            error = f"Failed to send SMS: {e}"
            self._log(message_type, phone, None, message, error, config['provider_id'])
            logger.error(f"SMS to {phone} failed: {e}")
            raise ProviderError(error)

        if response.status_code >= 400:
            try:
                detail = response.json().get('message', response.text)
            except ValueError:
                detail = response.text
            error = f"Failed to send SMS: {detail}"
            self._log(message_type, phone, None, message, error, config['provider_id'])
            logger.error(f"SMS to {phone} failed: {detail}")
            raise ProviderError(error)

        self._log(message_type, phone, None, message, provider_id=config['provider_id'])
        logger.info(f"Sent {message_type} to {phone}")
        return {'success': True, 'sid': response.json().get('sid')}

    # =========================================================================
    # CUSTOMER MESSAGES
    # =========================================================================

    def _new_message(self, message_type: str, subject: Optional[str], content: str,
                     metadata: Dict = None) -> Message:
        message = Message(
            type=message_type,
            subject=subject,
            content=content,
            sent_by=self.user_id,
            sent_at=datetime.utcnow(),
            status='pending',
            extra_data=metadata or {}
        )
        self.session.add(message)
        return message

    def _add_recipient(self, message: Message, customer: Customer) -> MessageRecipient:
        recipient = MessageRecipient(
            customer_id=customer.id,
            recipient_name=customer.full_name,
            recipient_email=customer.email,
            recipient_phone=customer.phone
        )
        message.recipients.append(recipient)
        return recipient

    def _deliver(self, recipient: MessageRecipient, send) -> bool:
        try:
            send()
        except (ProviderError, ValidationError) as e:
            recipient.status = 'failed'
            recipient.error_message = e.message
            return False
        recipient.status = 'sent'
        recipient.sent_at = datetime.utcnow()
        return True

    def _finish(self, message: Message, delivered: int) -> Dict:
        message.status = 'sent' if delivered else 'failed'
        self.session.flush()
        if delivered:
            self.events.log('message', message.id, 'MESSAGE_SENT',
                            f"{message.type} message sent to {delivered} recipient(s)",
                            {'type': message.type, 'delivered': delivered,
                             'failed': len(message.recipients) - delivered})
        return message.to_dict()

    def send_custom_message(self, recipient_ids: List[str], subject: str, message: str,
                            send_email: bool = True, send_sms: bool = False) -> Dict:
        """
        Send a composed message to customers by email and/or SMS.

        One Message is stored per channel. Customers without an address for a
        channel are skipped for it. A channel counts as sent when at least one
        delivery succeeded.
        """
        raise_for_errors(validate_message_request({
            'recipients': recipient_ids, 'subject': subject, 'message': message,
            'send_email': send_email, 'send_sms': send_sms
        }))

        customers = self.session.query(Customer).filter(Customer.id.in_(recipient_ids)).all()
        if not customers:
            raise NotFoundError('customer')

        results = {}
        if send_email:
            email_message = self._new_message('email', subject, message)
            delivered = 0
            for customer in customers:
                if not customer.email:
                    continue
                recipient = self._add_recipient(email_message, customer)
                if self._deliver(recipient, lambda c=customer: self.send_email(
                        c.email, subject, message, c.full_name, 'custom_email')):
                    delivered += 1
            results['email'] = self._finish(email_message, delivered)

        if send_sms:
            sms_message = self._new_message('sms', None, message)
            delivered = 0
            for customer in customers:
                if not customer.phone:
                    continue
                recipient = self._add_recipient(sms_message, customer)
                if self._deliver(recipient, lambda c=customer: self.send_sms(c.phone, message, 'custom_sms')):
                    delivered += 1
            results['sms'] = self._finish(sms_message, delivered)

        logger.info(f"Custom message to {len(customers)} customer(s): "
                    f"{ {k: v['status'] for k, v in results.items()} }")
        return results

    def send_estimate(self, estimate_id: str, channel: str = 'email') -> Dict:
        """Email (with the PDF attached) or text the estimate; a delivered estimate is marked sent."""
        if channel not in ('email', 'sms'):
            raise ValidationError('Channel must be email or sms', 'channel')

        estimates = EstimateRepository(self.session, self.user_id, self.settings)
        estimate = estimates.get_estimate(estimate_id)
        customer = self.session.get(Customer, estimate['customer_id'])
        metadata = {'estimate_id': estimate['id'], 'customer_id': estimate['customer_id'],
                    'property_id': estimate['property_id'], 'channel': channel}

        if channel == 'email':
            if not customer.email:
                raise ValidationError('Customer has no email address', 'email')
            content = estimates.build_estimate_email(estimate)
            message = self._new_message('estimate', content['subject'], content['text'], metadata)
            recipient = self._add_recipient(message, customer)
            pdf = build_estimate_pdf(estimate, self.settings)
            delivered = self._deliver(recipient, lambda: self.send_email(
                customer.email, content['subject'], content['text'], None, 'estimate_email',
                [(f"estimate-{estimate['id'][:8]}.pdf", pdf)]))
        else:
            if not customer.phone:
                raise ValidationError('Customer has no phone number', 'phone')
            content = estimates.build_estimate_sms(estimate)
            message = self._new_message('estimate', None, content, metadata)
            recipient = self._add_recipient(message, customer)
            delivered = self._deliver(recipient, lambda: self.send_sms(customer.phone, content, 'estimate_sms'))

        result = self._finish(message, int(delivered))
        if not delivered:
            raise ProviderError(recipient.error_message)
        if estimate['status'] == 'draft':
            estimates.update_status(estimate_id, 'sent')
        return result

    def send_invoice(self, invoice_id: str) -> Dict:
        """Email the invoice with its PDF; draft and pending invoices become sent."""
        invoices = InvoiceRepository(self.session, self.user_id, self.settings)
        invoice = invoices.get_invoice(invoice_id)
        customer = self.session.get(Customer, invoice['customer_id'])
        if not customer.email:
            raise ValidationError('Customer has no email address', 'email')

        content = invoices.build_invoice_email(invoice)
        message = self._new_message('invoice', content['subject'], content['text'],
                                    {'invoice_id': invoice['id'], 'customer_id': customer.id})
        recipient = self._add_recipient(message, customer)
        pdf = build_invoice_pdf(invoice, self.settings)

        delivered = self._deliver(recipient, lambda: self.send_email(
            customer.email, content['subject'], content['text'], message_type='invoice_email',
            attachments=[(f"invoice-{invoice['invoice_number']}.pdf", pdf)], html_body=content['html']))
        result = self._finish(message, int(delivered))
        if not delivered:
            raise ProviderError(recipient.error_message)
        invoices.mark_sent(invoice_id)
        logger.info(f"Sent invoice {invoice['invoice_number']} to {customer.email}")
        return result

    def send_invoice_sms(self, invoice_id: str) -> Dict:
        """Text the new-invoice notification to the customer."""
        invoices = InvoiceRepository(self.session, self.user_id, self.settings)
        invoice = invoices.get_invoice(invoice_id)
        customer = self.session.get(Customer, invoice['customer_id'])
        if not customer.phone:
            raise ValidationError('Customer has no phone number', 'phone')

        content = invoices.build_invoice_sms(invoice)
        message = self._new_message('invoice', None, content,
                                    {'invoice_id': invoice['id'], 'customer_id': customer.id, 'channel': 'sms'})
        recipient = self._add_recipient(message, customer)
        delivered = self._deliver(recipient, lambda: self.send_sms(customer.phone, content, 'invoice_sms'))
        result = self._finish(message, int(delivered))
        if not delivered:
            raise ProviderError(recipient.error_message)
        return result

    # =========================================================================
    # HISTORY
    # =========================================================================

    def list_messages(self, box: str = 'all', search: str = None) -> List[Dict]:
        """inbox: messages sent by other users, sent: by the current user, all: everything."""
        if box not in MESSAGE_BOXES:
            raise ValidationError(f"Box must be one of {', '.join(MESSAGE_BOXES)}", 'box')

        query = self.session.query(Message)
        if box == 'sent':
            query = query.filter(Message.sent_by == self.user_id)
        elif box == 'inbox':
            query = query.filter((Message.sent_by != self.user_id) | (Message.sent_by == None))
        messages = [m.to_dict() for m in query.order_by(Message.sent_at.desc()).all()]

        if search:
            term = search.strip().lower()
            messages = [
                m for m in messages
                if filter_records([m], term, MESSAGE_SEARCH_FIELDS)
                or any(term in (r['recipient_name'] or '').lower() for r in m['recipients'])
            ]
        return messages

    def get_message(self, message_id: str) -> Dict:
        message = self.session.get(Message, message_id)
        if not message:
            raise NotFoundError('message', message_id)
        return message.to_dict()

    def list_logs(self, limit: int = 100) -> List[Dict]:
        logs = self.session.query(MessageLog).order_by(MessageLog.created_at.desc()).limit(limit).all()
        return [log.to_dict() for log in logs]

    # =========================================================================
    # PROVIDER SETTINGS
    # =========================================================================

    def list_providers(self) -> List[Dict]:
        providers = self.session.query(MessageProvider).order_by(MessageProvider.type, MessageProvider.name).all()
        return [p.to_dict() for p in providers]

    def save_provider(self, data: Dict, provider_id: str = None) -> Dict:
        """Create or update a provider. Activating one deactivates the others of its type."""
        if provider_id:
            provider = self.session.get(MessageProvider, provider_id)
            if not provider:
                raise NotFoundError('message_provider', provider_id)
        else:
            provider = MessageProvider()

        provider_type = data.get('type', provider.type)
        if provider_type not in PROVIDER_TYPES:
            raise ValidationError('Provider type must be email or sms', 'type')
        name = (data.get('name') or provider.name or '').strip()
        if not name:
            raise ValidationError('Name is required', 'name')

        if not provider_id:
            self.session.add(provider)
        provider.type = provider_type
        provider.name = name
        if 'settings' in data:
            provider.settings = {**(provider.settings or {}), **(data['settings'] or {})}
        provider.is_active = bool(data.get('is_active', provider.is_active if provider_id else True))
        self.session.flush()

        if provider.is_active:
            others = self.session.query(MessageProvider).filter(
                MessageProvider.type == provider.type,
                MessageProvider.id != provider.id,
                MessageProvider.is_active == True
            ).all()
            for other in others:
                other.is_active = False
            self.session.flush()

        logger.info(f"Saved {provider.type} provider: {provider.name}")
        return provider.to_dict()

"""
Channel providers.

- sms: Twilio, TextBelt, SMS Gateway Center
- email: EmailJS, mailto compose
- chat: CallMeBot, wa.me deep link
- device: local device host (links, clipboard, files, notification)
"""

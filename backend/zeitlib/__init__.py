"""
zeitlib: Arbeitszeit-Abgleich und Vergütungsberechnung.

Pausenrecht (§ 4 ArbZG), Schichtplan-Abgleich, Validierung von Zeiteinträgen,
Überstunden-Salden und Umsatzbonus mit Monatsübertrag.
"""

__version__ = '0.1.0'
